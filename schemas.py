"""
Database Schemas for the Restaurant POS

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., MenuItem -> "menuitem").
Order records keep the camelCase field names that reporting consumers read.
"""
from datetime import date, datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DiscountType = Literal["percentage", "fixed"]


def check_discount_value(discount_type: str, value: float) -> None:
    if discount_type == "percentage" and not 0 < value <= 100:
        raise ValueError("Percentage discount must be greater than 0 and at most 100")
    if value < 0:
        raise ValueError("Discount value cannot be negative")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MenuItem(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Item name shown on the POS")
    price: float = Field(..., ge=0, description="Unit price")
    image_url: Optional[str] = None
    code: Optional[str] = Field(None, description="Short code typed at the till")
    is_available: bool = True


class CartItem(CamelModel):
    id: str = Field(..., description="Menu item id")
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    image_url: Optional[str] = None

    @classmethod
    def from_menu_item(cls, item: MenuItem) -> "CartItem":
        return cls(id=item.id, name=item.name, price=item.price, quantity=1, image_url=item.image_url)


class Voucher(BaseModel):
    id: Optional[str] = None
    code: str = Field(..., description="Code as entered by the admin")
    code_lower: Optional[str] = Field(None, description="Case-insensitive lookup key")
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    min_order_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    times_used: int = Field(0, ge=0)
    is_active: bool = True

    @model_validator(mode="after")
    def _check(self):
        check_discount_value(self.discount_type, self.discount_value)
        if self.code_lower is None:
            self.code_lower = self.code.strip().lower()
        return self


class LoyalCustomerDiscount(BaseModel):
    id: Optional[str] = None
    mobile_number: str = Field(..., description="Unique, trimmed mobile number")
    customer_name: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    is_active: bool = True

    @model_validator(mode="after")
    def _check(self):
        check_discount_value(self.discount_type, self.discount_value)
        return self


class ManualDiscount(BaseModel):
    """Cashier-entered discount; (fixed, 0) means no manual discount."""
    discount_type: DiscountType = "fixed"
    value: float = 0.0


class LoyalDiscountDetails(CamelModel):
    mobile_number: str
    type: DiscountType
    value: float


class VoucherDiscountDetails(CamelModel):
    type: DiscountType
    value: float


class Order(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: Optional[str] = Field(None, description="Store id; absent when the order was not persisted")
    token: str = Field(..., description="Human-friendly order token")
    items: List[CartItem]
    subtotal: float = Field(..., ge=0)
    discount_amount: float = Field(0.0, ge=0)
    total: float = Field(..., ge=0)
    customer_name: Optional[str] = None
    customer_mobile: Optional[str] = None
    order_date: datetime
    applied_loyal_discount_details: Optional[LoyalDiscountDetails] = None
    applied_voucher_code: Optional[str] = None
    voucher_discount_details: Optional[VoucherDiscountDetails] = None
    manual_discount_type: Optional[DiscountType] = None
    manual_discount_value: Optional[float] = None

    @model_validator(mode="after")
    def _single_discount_source(self):
        sources = [
            self.applied_loyal_discount_details is not None,
            self.applied_voucher_code is not None,
            self.manual_discount_type is not None,
        ]
        if sum(sources) > 1:
            raise ValueError("An order records at most one discount source")
        return self


"""
Notes:
- Define new collections by creating new Pydantic classes in this file.
- The system will use these schemas for validation and documentation.
"""
