"""
Order pricing.

Pure functions over cart line items and the discount sources held by a cart.
At most one discount source applies; when several are populated the loyal
customer discount wins, then the voucher, then a manual discount.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from schemas import CartItem, LoyalCustomerDiscount, ManualDiscount, Voucher

NONE = "none"
LOYAL = "loyal"
VOUCHER = "voucher"
MANUAL = "manual"


@dataclass(frozen=True)
class ActiveDiscount:
    source: str = NONE
    discount_type: Optional[str] = None
    value: float = 0.0
    # voucher code or loyal customer mobile number
    reference: Optional[str] = None


NO_DISCOUNT = ActiveDiscount()


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    discount_amount: float
    total: float
    discount: ActiveDiscount = NO_DISCOUNT


def subtotal_of(items: Iterable[CartItem]) -> float:
    return max(0.0, sum(item.price * item.quantity for item in items))


def resolve_active_discount(
    loyal: Optional[LoyalCustomerDiscount] = None,
    voucher: Optional[Voucher] = None,
    manual: Optional[ManualDiscount] = None,
) -> ActiveDiscount:
    if loyal is not None:
        return ActiveDiscount(LOYAL, loyal.discount_type, loyal.discount_value, loyal.mobile_number)
    if voucher is not None:
        return ActiveDiscount(VOUCHER, voucher.discount_type, voucher.discount_value, voucher.code)
    if manual is not None and manual.value > 0:
        return ActiveDiscount(MANUAL, manual.discount_type, manual.value)
    return NO_DISCOUNT


def discount_for(subtotal: float, discount_type: Optional[str], value: float) -> float:
    """Unclamped discount for a percentage or fixed value."""
    if discount_type == "percentage":
        return subtotal * value / 100
    if discount_type == "fixed":
        return value
    return 0.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def calculate_totals(
    items: Iterable[CartItem],
    loyal: Optional[LoyalCustomerDiscount] = None,
    voucher: Optional[Voucher] = None,
    manual: Optional[ManualDiscount] = None,
) -> PriceBreakdown:
    """
    Price a cart.

    The discount amount is clamped to [0, subtotal], so a voucher or manual
    value larger than the order never yields a negative total.
    """
    subtotal = subtotal_of(items)
    discount = resolve_active_discount(loyal, voucher, manual)
    discount_amount = clamp(discount_for(subtotal, discount.discount_type, discount.value), 0.0, subtotal)
    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
        discount=discount,
    )
