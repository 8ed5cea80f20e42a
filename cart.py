"""
Cart state for one POS terminal session.

The cart owns its line items, the customer identity and the three discount
sources. At most one discount source is populated at a time: applying one
clears the others, and an active loyal-customer discount blocks vouchers and
manual discounts. Mutators never raise on collaborator failures; they return
a CartResult describing what happened.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from config import MIN_MOBILE_LENGTH
from discounts import lookup_loyal_discount, validate_voucher
from pricing import ActiveDiscount, PriceBreakdown, calculate_totals
from schemas import CartItem, LoyalCustomerDiscount, ManualDiscount, MenuItem, Voucher

logger = logging.getLogger(__name__)

OK = "ok"
REJECTED = "rejected"
CONFLICT = "conflict"
IO_ERROR = "io_error"
STALE = "stale"

LOYAL_CONFLICT = "A loyal customer discount is active. Remove it before applying another discount."


@dataclass
class CartResult:
    ok: bool
    kind: str = OK
    message: Optional[str] = None


class Cart:
    def __init__(self, store, min_mobile_length: int = MIN_MOBILE_LENGTH):
        self.store = store
        self.min_mobile_length = min_mobile_length
        self.items: List[CartItem] = []
        self.customer_name = ""
        self.customer_mobile = ""
        self.loyal_discount: Optional[LoyalCustomerDiscount] = None
        self.applied_voucher: Optional[Voucher] = None
        self.manual_discount = ManualDiscount()
        # Bumped by every committed discount change; resolver answers taken
        # against an older version are dropped.
        self.discount_version = 0
        # Bumped by every loyal check, so a newer mobile number supersedes a
        # lookup still in flight for an older one.
        self.loyal_request = 0

    def _next_version(self) -> int:
        self.discount_version += 1
        return self.discount_version

    def _stale(self, ticket, current, what: str) -> Optional[CartResult]:
        if ticket == current:
            return None
        logger.info("Dropping stale %s result (request %s, cart at %s)", what, ticket, current)
        return CartResult(False, STALE, f"The {what} result was superseded by a newer discount change.")

    # Items

    def add_item(self, menu_item: MenuItem) -> CartResult:
        for item in self.items:
            if item.id == menu_item.id:
                item.quantity += 1
                return CartResult(True)
        self.items.append(CartItem.from_menu_item(menu_item))
        return CartResult(True)

    def remove_item(self, item_id: str) -> CartResult:
        self.items = [i for i in self.items if i.id != item_id]
        return CartResult(True)

    def set_quantity(self, item_id: str, quantity: int) -> CartResult:
        if quantity <= 0:
            return self.remove_item(item_id)
        for item in self.items:
            if item.id == item_id:
                item.quantity = quantity
        return CartResult(True)

    def set_customer_info(self, name: Optional[str], mobile: Optional[str]) -> CartResult:
        self.customer_name = name or ""
        self.customer_mobile = mobile or ""
        return CartResult(True)

    # Discounts

    def check_loyal_customer(self, mobile: Optional[str]) -> CartResult:
        """
        Apply or drop the loyal-customer discount for a mobile number.

        A match replaces any voucher or manual discount. When the number is
        too short or has no match, an active loyal discount is removed; an
        earlier voucher is not restored.
        """
        mobile = (mobile or "").strip()
        self.loyal_request += 1
        if len(mobile) < self.min_mobile_length:
            if self.loyal_discount is not None:
                self._next_version()
                self.loyal_discount = None
                return CartResult(True, message="Loyal customer discount removed.")
            return CartResult(True)

        ticket = (self.loyal_request, self.discount_version)
        lookup = lookup_loyal_discount(self.store, mobile)
        stale = self._stale(ticket, (self.loyal_request, self.discount_version), "loyal customer check")
        if stale:
            return stale

        if lookup.found:
            self.clear_active_discount()
            self.loyal_discount = lookup.discount
            return CartResult(True, message=f"Loyal customer discount applied for {mobile}.")

        had_loyal = self.loyal_discount is not None
        if had_loyal:
            self._next_version()
            self.loyal_discount = None
        if lookup.error:
            return CartResult(False, IO_ERROR, lookup.error)
        return CartResult(True, message="Loyal customer discount removed." if had_loyal else None)

    def apply_voucher(self, code: str) -> CartResult:
        if self.loyal_discount is not None:
            return CartResult(False, CONFLICT, LOYAL_CONFLICT)

        ticket = self.discount_version
        check = validate_voucher(self.store, code, self.subtotal)
        stale = self._stale(ticket, self.discount_version, "voucher check")
        if stale:
            return stale
        if not check.ok:
            return CartResult(False, check.kind, check.error)

        self.clear_active_discount()
        self.applied_voucher = check.voucher
        return CartResult(True, message=f"Voucher {check.voucher.code} applied.")

    def remove_voucher(self) -> CartResult:
        if self.applied_voucher is not None:
            self._next_version()
            self.applied_voucher = None
        return CartResult(True)

    def apply_manual_discount(self, discount_type: str, value: float) -> CartResult:
        if self.loyal_discount is not None:
            return CartResult(False, CONFLICT, LOYAL_CONFLICT)
        if discount_type not in ("percentage", "fixed"):
            return CartResult(False, REJECTED, f"Unknown discount type {discount_type!r}.")
        if value < 0:
            return CartResult(False, REJECTED, "Discount value cannot be negative.")
        if discount_type == "percentage" and value > 100:
            return CartResult(False, REJECTED, "Percentage discount cannot exceed 100%.")

        self.clear_active_discount()
        self.manual_discount = ManualDiscount(discount_type=discount_type, value=value)
        return CartResult(True)

    def remove_manual_discount(self) -> CartResult:
        if self.manual_discount.value > 0:
            self._next_version()
            self.manual_discount = ManualDiscount()
        return CartResult(True)

    def clear_active_discount(self) -> None:
        self._next_version()
        self.loyal_discount = None
        self.applied_voucher = None
        self.manual_discount = ManualDiscount()

    def clear(self) -> None:
        """Reset the cart for the next order."""
        self.items = []
        self.customer_name = ""
        self.customer_mobile = ""
        self.clear_active_discount()

    # Queries

    @property
    def is_empty(self) -> bool:
        return not self.items

    def breakdown(self) -> PriceBreakdown:
        return calculate_totals(self.items, self.loyal_discount, self.applied_voucher, self.manual_discount)

    @property
    def subtotal(self) -> float:
        return self.breakdown().subtotal

    @property
    def discount_amount(self) -> float:
        return self.breakdown().discount_amount

    @property
    def total(self) -> float:
        return self.breakdown().total

    @property
    def active_discount(self) -> ActiveDiscount:
        return self.breakdown().discount

    def snapshot(self) -> dict:
        prices = self.breakdown()
        discount = prices.discount
        return {
            "items": [i.model_dump() for i in self.items],
            "customer_name": self.customer_name or None,
            "customer_mobile": self.customer_mobile or None,
            "active_discount": {
                "source": discount.source,
                "discount_type": discount.discount_type,
                "value": discount.value,
                "reference": discount.reference,
            },
            "manual_discount": self.manual_discount.model_dump(),
            "subtotal": prices.subtotal,
            "discount_amount": prices.discount_amount,
            "total": prices.total,
        }
