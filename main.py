import logging
from dataclasses import asdict
from datetime import date
from typing import Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from cart import Cart, CartResult
from checkout import finalize_order
from config import LOG_LEVEL, PORT
from database import (
    StoreError,
    StoreErrorKind,
    create_document,
    delete_document,
    get_document_by_id,
    get_documents,
    list_collections,
    update_document,
)
from discounts import lookup_loyal_discount, validate_voucher
from schemas import DiscountType, LoyalCustomerDiscount, MenuItem, Voucher, check_discount_value
from store import LOYAL_DISCOUNTS, MENU_ITEMS, ORDERS, VOUCHERS, MongoStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Restaurant POS API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store = MongoStore()

# Open carts keyed by cart id; each belongs to one terminal session. Clients
# release a cart with DELETE /carts/{id} or checkout?close=true.
_carts: Dict[str, Cart] = {}


def get_store():
    return _store


def get_cart(cart_id: str) -> Cart:
    cart = _carts.get(cart_id)
    if cart is None:
        raise HTTPException(404, "Cart not found")
    return cart


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError):
    status = 404 if exc.kind == StoreErrorKind.NOT_FOUND else 503
    return JSONResponse(status_code=status, content={"detail": exc.message, "kind": exc.kind.value})


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Restaurant POS API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["collections"] = list_collections()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except StoreError as e:
        response["database"] = f"❌ Error: {e.kind.value}"
        response["connection_status"] = e.message[:80]
    return response


# ===================== Menu =====================
class MenuItemCreate(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    image_url: Optional[str] = None
    code: Optional[str] = None
    is_available: bool = True


@app.get("/menu")
def list_menu(store=Depends(get_store)):
    return [item.model_dump() for item in store.list_menu_items()]


@app.get("/menu/{item_id}")
def get_menu_item(item_id: str, store=Depends(get_store)):
    item = store.get_menu_item(item_id)
    if not item:
        raise HTTPException(404, "Menu item not found")
    return item.model_dump()


@app.post("/admin/menu")
def create_menu_item(payload: MenuItemCreate):
    item = MenuItem(**payload.model_dump())
    item_id = create_document(MENU_ITEMS, item)
    return {"_id": item_id}


@app.put("/admin/menu/{item_id}")
def update_menu_item(item_id: str, payload: MenuItemCreate):
    ok = update_document(MENU_ITEMS, item_id, payload.model_dump())
    if not ok:
        raise HTTPException(404, "Menu item not found")
    return {"updated": True}


@app.delete("/admin/menu/{item_id}")
def delete_menu_item(item_id: str):
    ok = delete_document(MENU_ITEMS, item_id)
    if not ok:
        raise HTTPException(404, "Menu item not found")
    return {"deleted": True}


# ===================== Vouchers =====================
class VoucherCreate(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    min_order_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_value(self):
        check_discount_value(self.discount_type, self.discount_value)
        return self


class VoucherUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    min_order_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class VoucherValidateRequest(BaseModel):
    code: str
    subtotal: float = Field(..., ge=0)


def _code_taken(code_lower: str, except_id: Optional[str] = None) -> bool:
    matches = get_documents(VOUCHERS, {"code_lower": code_lower})
    return any(doc["_id"] != except_id for doc in matches)


@app.get("/admin/vouchers")
def list_vouchers(store=Depends(get_store)):
    return [v.model_dump(mode="json") for v in store.list_vouchers()]


@app.post("/admin/vouchers")
def create_voucher(payload: VoucherCreate):
    code = payload.code.strip()
    if not code:
        raise HTTPException(400, "Voucher code cannot be empty.")
    if _code_taken(code.lower()):
        raise HTTPException(400, f'Voucher code "{code}" already exists.')
    voucher = Voucher(**{**payload.model_dump(), "code": code, "code_lower": code.lower(), "times_used": 0})
    voucher_id = create_document(VOUCHERS, voucher)
    logger.info("Voucher %s created as %s", code, voucher_id)
    return {"_id": voucher_id}


@app.put("/admin/vouchers/{voucher_id}")
def update_voucher(voucher_id: str, payload: VoucherUpdate):
    existing = get_document_by_id(VOUCHERS, voucher_id)
    if not existing:
        raise HTTPException(404, "Voucher not found")
    updates = payload.model_dump(exclude_unset=True)
    if "code" in updates:
        code = (updates["code"] or "").strip()
        if not code:
            raise HTTPException(400, "Voucher code cannot be empty.")
        if _code_taken(code.lower(), except_id=voucher_id):
            raise HTTPException(400, f'Voucher code "{code}" already exists.')
        updates["code"] = code
        updates["code_lower"] = code.lower()
    try:
        merged = Voucher.model_validate({**existing, **updates})
    except ValueError as e:
        raise HTTPException(422, str(e))
    # times_used only ever moves through the atomic increment
    update_document(VOUCHERS, voucher_id, merged.model_dump(mode="json", exclude={"id", "times_used"}))
    return {"updated": True}


@app.delete("/admin/vouchers/{voucher_id}")
def delete_voucher(voucher_id: str):
    ok = delete_document(VOUCHERS, voucher_id)
    if not ok:
        raise HTTPException(404, "Voucher not found")
    return {"deleted": True}


@app.post("/vouchers/validate")
def check_voucher(payload: VoucherValidateRequest, store=Depends(get_store)):
    check = validate_voucher(store, payload.code, payload.subtotal)
    return {
        "valid": check.ok,
        "kind": check.kind,
        "error": check.error,
        "voucher": check.voucher.model_dump(mode="json") if check.voucher else None,
    }


# ===================== Loyal customer discounts =====================
class LoyalDiscountCreate(BaseModel):
    mobile_number: str
    customer_name: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    is_active: bool = True

    @model_validator(mode="after")
    def _check_value(self):
        check_discount_value(self.discount_type, self.discount_value)
        return self


class LoyalDiscountUpdate(BaseModel):
    mobile_number: Optional[str] = None
    customer_name: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    is_active: Optional[bool] = None


def _mobile_taken(mobile: str, except_id: Optional[str] = None) -> bool:
    matches = get_documents(LOYAL_DISCOUNTS, {"mobile_number": mobile})
    return any(doc["_id"] != except_id for doc in matches)


@app.get("/admin/loyal-discounts")
def list_loyal_discounts(store=Depends(get_store)):
    return [d.model_dump() for d in store.list_loyal_discounts()]


@app.post("/admin/loyal-discounts")
def create_loyal_discount(payload: LoyalDiscountCreate):
    mobile = payload.mobile_number.strip()
    if not mobile:
        raise HTTPException(400, "Mobile number cannot be empty.")
    if _mobile_taken(mobile):
        raise HTTPException(400, f'A discount for mobile number "{mobile}" already exists.')
    name = (payload.customer_name or "").strip() or None
    discount = LoyalCustomerDiscount(**{**payload.model_dump(), "mobile_number": mobile, "customer_name": name})
    discount_id = create_document(LOYAL_DISCOUNTS, discount)
    return {"_id": discount_id}


@app.put("/admin/loyal-discounts/{discount_id}")
def update_loyal_discount(discount_id: str, payload: LoyalDiscountUpdate):
    existing = get_document_by_id(LOYAL_DISCOUNTS, discount_id)
    if not existing:
        raise HTTPException(404, "Loyal customer discount not found")
    updates = payload.model_dump(exclude_unset=True)
    if "mobile_number" in updates:
        mobile = (updates["mobile_number"] or "").strip()
        if not mobile:
            raise HTTPException(400, "Mobile number cannot be empty.")
        if _mobile_taken(mobile, except_id=discount_id):
            raise HTTPException(400, f'Mobile number "{mobile}" is already assigned to another loyal customer discount.')
        updates["mobile_number"] = mobile
    if "customer_name" in updates:
        updates["customer_name"] = (updates["customer_name"] or "").strip() or None
    try:
        merged = LoyalCustomerDiscount.model_validate({**existing, **updates})
    except ValueError as e:
        raise HTTPException(422, str(e))
    update_document(LOYAL_DISCOUNTS, discount_id, merged.model_dump(mode="json", exclude={"id"}))
    return {"updated": True}


@app.delete("/admin/loyal-discounts/{discount_id}")
def delete_loyal_discount(discount_id: str):
    ok = delete_document(LOYAL_DISCOUNTS, discount_id)
    if not ok:
        raise HTTPException(404, "Loyal customer discount not found")
    return {"deleted": True}


@app.get("/loyal-discounts/lookup")
def find_loyal_discount(mobile: str, store=Depends(get_store)):
    lookup = lookup_loyal_discount(store, mobile)
    return {
        "found": lookup.found,
        "error": lookup.error,
        "discount": lookup.discount.model_dump() if lookup.discount else None,
    }


# ===================== Carts =====================
class AddItemRequest(BaseModel):
    item_id: str


class QuantityRequest(BaseModel):
    quantity: int


class CustomerRequest(BaseModel):
    name: Optional[str] = None
    mobile: Optional[str] = None


class LoyalCheckRequest(BaseModel):
    mobile: Optional[str] = None


class VoucherRequest(BaseModel):
    code: str


class ManualDiscountRequest(BaseModel):
    discount_type: str = "fixed"
    value: float


def _cart_response(cart_id: str, cart: Cart, result: Optional[CartResult] = None) -> dict:
    body = {"cart_id": cart_id, "cart": cart.snapshot()}
    if result is not None:
        body["result"] = asdict(result)
    return body


@app.post("/carts")
def open_cart(store=Depends(get_store)):
    cart_id = uuid4().hex
    _carts[cart_id] = Cart(store)
    return _cart_response(cart_id, _carts[cart_id])


@app.get("/carts/{cart_id}")
def read_cart(cart_id: str, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart)


@app.delete("/carts/{cart_id}")
def close_cart(cart_id: str, cart: Cart = Depends(get_cart)):
    _carts.pop(cart_id, None)
    return {"deleted": True}


@app.post("/carts/{cart_id}/items")
def add_cart_item(cart_id: str, payload: AddItemRequest, cart: Cart = Depends(get_cart)):
    item = cart.store.get_menu_item(payload.item_id)
    if not item:
        raise HTTPException(404, "Menu item not found")
    if not item.is_available:
        raise HTTPException(400, f"{item.name} is not available")
    return _cart_response(cart_id, cart, cart.add_item(item))


@app.put("/carts/{cart_id}/items/{item_id}")
def set_cart_item_quantity(cart_id: str, item_id: str, payload: QuantityRequest, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.set_quantity(item_id, payload.quantity))


@app.delete("/carts/{cart_id}/items/{item_id}")
def remove_cart_item(cart_id: str, item_id: str, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.remove_item(item_id))


@app.put("/carts/{cart_id}/customer")
def set_customer(cart_id: str, payload: CustomerRequest, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.set_customer_info(payload.name, payload.mobile))


@app.post("/carts/{cart_id}/loyal-check")
def check_loyal_customer(cart_id: str, payload: LoyalCheckRequest, cart: Cart = Depends(get_cart)):
    mobile = payload.mobile if payload.mobile is not None else cart.customer_mobile
    return _cart_response(cart_id, cart, cart.check_loyal_customer(mobile))


@app.post("/carts/{cart_id}/voucher")
def apply_cart_voucher(cart_id: str, payload: VoucherRequest, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.apply_voucher(payload.code))


@app.delete("/carts/{cart_id}/voucher")
def remove_cart_voucher(cart_id: str, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.remove_voucher())


@app.post("/carts/{cart_id}/manual-discount")
def apply_cart_manual_discount(cart_id: str, payload: ManualDiscountRequest, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.apply_manual_discount(payload.discount_type, payload.value))


@app.delete("/carts/{cart_id}/manual-discount")
def remove_cart_manual_discount(cart_id: str, cart: Cart = Depends(get_cart)):
    return _cart_response(cart_id, cart, cart.remove_manual_discount())


@app.post("/carts/{cart_id}/checkout")
def checkout_cart(cart_id: str, close: bool = False, cart: Cart = Depends(get_cart)):
    """Finalize the cart. With close=true the cart session ends once the order is built."""
    result = finalize_order(cart, cart.store)
    if not result.ok:
        raise HTTPException(400, result.error)
    if close:
        _carts.pop(cart_id, None)
    return {
        "order": result.order.model_dump(mode="json", by_alias=True, exclude_none=True),
        "saved": result.order.id is not None,
        "warnings": result.warnings,
    }


@app.post("/carts/{cart_id}/clear")
def clear_cart(cart_id: str, cart: Cart = Depends(get_cart)):
    cart.clear()
    return _cart_response(cart_id, cart)


# ===================== Orders =====================
@app.get("/orders")
def list_orders(start: Optional[date] = None, end: Optional[date] = None, store=Depends(get_store)):
    orders = store.list_orders(start, end)
    return [o.model_dump(mode="json", by_alias=True, exclude_none=True) for o in orders]


@app.get("/orders/{order_id}")
def get_order(order_id: str, store=Depends(get_store)):
    order = store.get_order(order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order.model_dump(mode="json", by_alias=True, exclude_none=True)


# ===================== Schema Export for Docs =====================
@app.get("/schema")
def get_schema():
    return {
        "collections": [
            MENU_ITEMS,
            VOUCHERS,
            LOYAL_DISCOUNTS,
            ORDERS,
        ],
        "notes": "Each class in schemas.py maps to a MongoDB collection (lowercase)."
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
