"""
Order finalization.

Turns the current cart into an immutable Order, saves it and records the
voucher use. Saving is best effort: when the store is down the order is still
returned (without a store id) so the receipt can print, and the problem is
reported as a warning. The cart is left untouched; clearing it after printing
is up to the caller.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from cart import Cart
from config import ORDER_TOKEN_ATTEMPTS, ORDER_TOKEN_LENGTH, ORDER_TOKEN_PREFIX
from database import StoreError
from discounts import increment_voucher_usage
from pricing import LOYAL, MANUAL, VOUCHER
from schemas import LoyalDiscountDetails, Order, VoucherDiscountDetails

logger = logging.getLogger(__name__)


@dataclass
class Checkout:
    order: Optional[Order] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.order is not None


def _candidate_token(length: int = ORDER_TOKEN_LENGTH) -> str:
    return f"{ORDER_TOKEN_PREFIX}-{uuid4().hex[:length].upper()}"


def generate_order_token(store=None) -> str:
    """
    Short token printed on the receipt, e.g. TKN-3F9A1C.

    Candidates are checked against saved orders. If every short candidate is
    taken the full UUID is used. A failed check accepts the candidate, since
    printing must not wait for the store.
    """
    for _ in range(ORDER_TOKEN_ATTEMPTS):
        token = _candidate_token()
        if store is None:
            return token
        try:
            if not store.order_token_exists(token):
                return token
        except StoreError as e:
            logger.warning("Could not check order token %s, using it unchecked: %s", token, e)
            return token
        logger.info("Order token %s already taken", token)
    return _candidate_token(32)


def build_order(cart: Cart, token: str, order_date: datetime) -> Order:
    prices = cart.breakdown()
    discount = prices.discount
    details = {}
    if discount.source == LOYAL:
        details["applied_loyal_discount_details"] = LoyalDiscountDetails(
            mobile_number=discount.reference, type=discount.discount_type, value=discount.value
        )
    elif discount.source == VOUCHER:
        details["applied_voucher_code"] = discount.reference
        details["voucher_discount_details"] = VoucherDiscountDetails(
            type=discount.discount_type, value=discount.value
        )
    elif discount.source == MANUAL:
        details["manual_discount_type"] = discount.discount_type
        details["manual_discount_value"] = discount.value

    return Order(
        token=token,
        items=[item.model_copy() for item in cart.items],
        subtotal=prices.subtotal,
        discount_amount=prices.discount_amount,
        total=prices.total,
        customer_name=cart.customer_name or None,
        customer_mobile=cart.customer_mobile or None,
        order_date=order_date,
        **details,
    )


def _record_voucher_use(store, code: str) -> Optional[str]:
    """Increment usage of the voucher with this code; returns a warning on failure."""
    try:
        voucher = store.find_voucher_by_code(code.strip().lower())
    except StoreError as e:
        logger.warning("Voucher %s lookup after checkout failed: %s", code, e)
        return f"Usage of voucher {code} was not recorded ({e.kind.value})."
    if voucher is None:
        logger.warning("Voucher %s disappeared before its use was recorded", code)
        return f"Voucher {code} no longer exists; usage was not recorded."

    result = increment_voucher_usage(store, voucher.id)
    if not result.ok:
        logger.warning("Usage of voucher %s (%s) not recorded: %s", code, voucher.id, result.error)
        return f"Usage of voucher {code} was not recorded: {result.error}"
    return None


def finalize_order(cart: Cart, store, now: Optional[datetime] = None) -> Checkout:
    if cart.is_empty:
        return Checkout(error="Cart is empty.")

    now = now or datetime.now(timezone.utc)
    token = generate_order_token(store)
    order = build_order(cart, token, now)

    try:
        order_id = store.persist_order(order)
    except StoreError as e:
        logger.warning("Order %s was not saved: %s", token, e)
        return Checkout(
            order=order,
            warnings=[f"Order {token} could not be saved ({e.kind.value}). The receipt can still be printed."],
        )

    order = order.model_copy(update={"id": order_id})
    logger.info("Order %s saved as %s, total %.2f", token, order_id, order.total)

    warnings = []
    if order.applied_voucher_code:
        warning = _record_voucher_use(store, order.applied_voucher_code)
        if warning:
            warnings.append(warning)
    return Checkout(order=order, warnings=warnings)
