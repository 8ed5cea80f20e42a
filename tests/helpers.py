import threading
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from database import StoreError, StoreErrorKind
from schemas import LoyalCustomerDiscount, MenuItem, Voucher

BURGER = MenuItem(id="burger", name="Burger", price=10.0)
FRIES = MenuItem(id="fries", name="Fries", price=5.0)
SODA = MenuItem(id="soda", name="Soda", price=1.5)

LOYAL_MOBILE = "01711000000"
NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def make_voucher(**overrides) -> Voucher:
    data = {
        "id": "v-save20",
        "code": "SAVE20",
        "discount_type": "percentage",
        "discount_value": 20,
        "is_active": True,
    }
    data.update(overrides)
    return Voucher(**data)


def make_loyal(**overrides) -> LoyalCustomerDiscount:
    data = {
        "id": "l-1",
        "mobile_number": LOYAL_MOBILE,
        "customer_name": "Regular",
        "discount_type": "fixed",
        "discount_value": 3,
        "is_active": True,
    }
    data.update(overrides)
    return LoyalCustomerDiscount(**data)


class InMemoryStore:
    """Store collaborator double with call recording and injectable failures."""

    def __init__(self, menu=(BURGER, FRIES, SODA), vouchers=(), loyal=()):
        self.menu = {m.id: m for m in menu}
        self.vouchers = {v.id: v for v in vouchers}
        self.loyal = {d.id: d for d in loyal}
        self.orders = {}
        self.failures = {}
        self.calls = []
        self._lock = threading.Lock()
        self._order_seq = 0

    def fail(self, method: str, kind: StoreErrorKind = StoreErrorKind.UNAVAILABLE):
        self.failures[method] = StoreError(kind, f"{method} is down")

    def _call(self, method: str, *args):
        self.calls.append((method,) + args)
        exc = self.failures.get(method)
        if exc:
            raise exc

    def calls_to(self, method: str):
        return [c[1:] for c in self.calls if c[0] == method]

    def find_loyal_discount(self, mobile: str) -> Optional[LoyalCustomerDiscount]:
        self._call("find_loyal_discount", mobile)
        return next((d for d in self.loyal.values() if d.mobile_number == mobile and d.is_active), None)

    def find_voucher_by_code(self, code_lower: str) -> Optional[Voucher]:
        self._call("find_voucher_by_code", code_lower)
        return next((v for v in self.vouchers.values() if v.code_lower == code_lower), None)

    def increment_voucher_usage(self, voucher_id: str) -> Voucher:
        self._call("increment_voucher_usage", voucher_id)
        with self._lock:
            voucher = self.vouchers.get(voucher_id)
            if voucher is None:
                raise StoreError(StoreErrorKind.NOT_FOUND, f"voucher {voucher_id} not found")
            updated = voucher.model_copy(update={"times_used": voucher.times_used + 1})
            self.vouchers[voucher_id] = updated
        return updated

    def persist_order(self, order) -> str:
        self._call("persist_order", order.token)
        self._order_seq += 1
        order_id = f"order-{self._order_seq}"
        self.orders[order_id] = order.model_copy(update={"id": order_id})
        return order_id

    def order_token_exists(self, token: str) -> bool:
        self._call("order_token_exists", token)
        return any(o.token == token for o in self.orders.values())

    def get_menu_item(self, item_id: str) -> Optional[MenuItem]:
        self._call("get_menu_item", item_id)
        return self.menu.get(item_id)

    def list_menu_items(self):
        self._call("list_menu_items")
        return sorted(self.menu.values(), key=lambda m: m.name)

    def list_vouchers(self):
        self._call("list_vouchers")
        return list(self.vouchers.values())

    def list_loyal_discounts(self):
        self._call("list_loyal_discounts")
        return sorted(self.loyal.values(), key=lambda d: d.mobile_number)

    def get_order(self, order_id: str):
        self._call("get_order", order_id)
        return self.orders.get(order_id)

    def list_orders(self, start: Optional[date] = None, end: Optional[date] = None):
        self._call("list_orders", start, end)
        orders = list(self.orders.values())
        if start:
            orders = [o for o in orders if o.order_date.date() >= start]
        if end:
            orders = [o for o in orders if o.order_date.date() < end + timedelta(days=1)]
        return sorted(orders, key=lambda o: o.order_date, reverse=True)
