"""
Store collaborator backed by the MongoDB helpers in database.py.

The cart core only talks to the store through the methods below; tests swap in
an in-memory object with the same methods.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from database import (
    StoreError,
    StoreErrorKind,
    create_document,
    find_document,
    get_document_by_id,
    get_documents,
    increment_field,
)
from schemas import LoyalCustomerDiscount, MenuItem, Order, Voucher

logger = logging.getLogger(__name__)

MENU_ITEMS = "menuitem"
VOUCHERS = "voucher"
LOYAL_DISCOUNTS = "loyalcustomerdiscount"
ORDERS = "order"

M = TypeVar("M", bound=BaseModel)


def load_record(model: Type[M], doc: dict) -> M:
    """Build a model from a serialized document, mapping `_id` to `id`."""
    data = dict(doc)
    data["id"] = data.pop("_id", None)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error("Malformed %s record %s: %s", model.__name__, data["id"], e)
        raise StoreError(StoreErrorKind.UNKNOWN, f"Malformed {model.__name__} record {data['id']}") from e


class MongoStore:

    def find_loyal_discount(self, mobile: str) -> Optional[LoyalCustomerDiscount]:
        doc = find_document(LOYAL_DISCOUNTS, {"mobile_number": mobile, "is_active": True})
        return load_record(LoyalCustomerDiscount, doc) if doc else None

    def find_voucher_by_code(self, code_lower: str) -> Optional[Voucher]:
        doc = find_document(VOUCHERS, {"code_lower": code_lower})
        return load_record(Voucher, doc) if doc else None

    def increment_voucher_usage(self, voucher_id: str) -> Voucher:
        doc = increment_field(VOUCHERS, voucher_id, "times_used", 1)
        return load_record(Voucher, doc)

    def persist_order(self, order: Order) -> str:
        return create_document(ORDERS, order)

    def order_token_exists(self, token: str) -> bool:
        return find_document(ORDERS, {"token": token}) is not None

    def get_menu_item(self, item_id: str) -> Optional[MenuItem]:
        doc = get_document_by_id(MENU_ITEMS, item_id)
        return load_record(MenuItem, doc) if doc else None

    def list_menu_items(self) -> List[MenuItem]:
        docs = get_documents(MENU_ITEMS, {"is_available": True}, sort=[["name", 1]])
        return [load_record(MenuItem, d) for d in docs]

    def list_vouchers(self) -> List[Voucher]:
        docs = get_documents(VOUCHERS, sort=[["created_at", -1]])
        return [load_record(Voucher, d) for d in docs]

    def list_loyal_discounts(self) -> List[LoyalCustomerDiscount]:
        docs = get_documents(LOYAL_DISCOUNTS, sort=[["mobile_number", 1]])
        return [load_record(LoyalCustomerDiscount, d) for d in docs]

    def get_order(self, order_id: str) -> Optional[Order]:
        doc = get_document_by_id(ORDERS, order_id)
        return load_record(Order, doc) if doc else None

    def list_orders(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Order]:
        """Orders placed between two calendar days (inclusive, UTC), newest first."""
        # orderDate is stored as an ISO-8601 string, which sorts chronologically
        date_filter = {}
        if start:
            date_filter["$gte"] = start.isoformat()
        if end:
            date_filter["$lt"] = (end + timedelta(days=1)).isoformat()
        filter_q = {"orderDate": date_filter} if date_filter else {}
        docs = get_documents(ORDERS, filter_q, sort=[["orderDate", -1]])
        return [load_record(Order, d) for d in docs]
