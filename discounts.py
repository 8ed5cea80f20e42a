"""
Discount source resolvers.

Each resolver asks the store for a discount record and returns a descriptor.
Store failures are reported in the descriptor and never raised, so callers
can tell an unreachable store apart from a business-rule rejection.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import CURRENCY_SYMBOL, POS_TIMEZONE
from database import StoreError, StoreErrorKind
from schemas import LoyalCustomerDiscount, Voucher

logger = logging.getLogger(__name__)

REJECTED = "rejected"
IO_ERROR = "io_error"
NOT_FOUND = "not_found"


@dataclass
class LoyalLookup:
    discount: Optional[LoyalCustomerDiscount] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.discount is not None


@dataclass
class VoucherCheck:
    voucher: Optional[Voucher] = None
    error: Optional[str] = None
    kind: str = "ok"

    @property
    def ok(self) -> bool:
        return self.voucher is not None


@dataclass
class UsageUpdate:
    ok: bool
    times_used: Optional[int] = None
    error: Optional[str] = None
    kind: str = "ok"


def pos_timezone():
    if POS_TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(POS_TIMEZONE)


def io_message(subject: str, exc: StoreError) -> str:
    return f"Could not reach the {subject} records ({exc.kind.value}). Please try again."


def lookup_loyal_discount(store, mobile: str) -> LoyalLookup:
    """Find the active loyal-customer discount for an exact mobile number."""
    mobile = (mobile or "").strip()
    if not mobile:
        return LoyalLookup()
    try:
        return LoyalLookup(discount=store.find_loyal_discount(mobile))
    except StoreError as e:
        logger.error("Loyal customer lookup for %s failed: %s", mobile, e)
        return LoyalLookup(error=io_message("loyal customer", e))


def _reject(message: str) -> VoucherCheck:
    return VoucherCheck(error=message, kind=REJECTED)


def validate_voucher(store, code: str, subtotal: float, now: Optional[datetime] = None) -> VoucherCheck:
    """
    Check a voucher code against the current order subtotal.

    Checks run in a fixed order and the first failure wins: empty code,
    unknown code, inactive, not yet valid, expired, minimum order amount,
    usage limit. Validity windows compare calendar days in POS_TIMEZONE.
    The usage counter is only read here.
    """
    trimmed = (code or "").strip()
    if not trimmed:
        return _reject("Please enter a voucher code.")

    try:
        voucher = store.find_voucher_by_code(trimmed.lower())
    except StoreError as e:
        logger.error("Voucher lookup for %r failed: %s", trimmed, e)
        return VoucherCheck(error=io_message("voucher", e), kind=IO_ERROR)

    if voucher is None:
        return _reject("Invalid voucher code.")
    if not voucher.is_active:
        return _reject("This voucher is currently inactive.")

    tz = pos_timezone()
    now = now.astimezone(tz) if now and now.tzinfo else (now or datetime.now(tz))
    today = now.date()
    if voucher.valid_from and today < voucher.valid_from:
        return _reject(f"This voucher is not active until {voucher.valid_from.strftime('%b %d, %Y')}.")
    if voucher.valid_until and today > voucher.valid_until:
        return _reject("This voucher has expired.")

    if voucher.min_order_amount is not None and subtotal < voucher.min_order_amount:
        return _reject(f"Minimum order amount of {CURRENCY_SYMBOL}{voucher.min_order_amount:.2f} not met.")

    if voucher.usage_limit is not None and voucher.times_used >= voucher.usage_limit:
        return _reject("This voucher has reached its usage limit.")

    logger.info("Voucher %s valid for subtotal %.2f", voucher.code, subtotal)
    return VoucherCheck(voucher=voucher)


def increment_voucher_usage(store, voucher_id: str) -> UsageUpdate:
    """Add exactly one use to a voucher with a single atomic store update."""
    try:
        voucher = store.increment_voucher_usage(voucher_id)
    except StoreError as e:
        if e.kind == StoreErrorKind.NOT_FOUND:
            return UsageUpdate(ok=False, error=f"Voucher {voucher_id} not found.", kind=NOT_FOUND)
        logger.error("Usage increment for voucher %s failed: %s", voucher_id, e)
        return UsageUpdate(ok=False, error=io_message("voucher", e), kind=IO_ERROR)
    logger.info("Voucher %s used %d time(s)", voucher_id, voucher.times_used)
    return UsageUpdate(ok=True, times_used=voucher.times_used)
