# dentalshop/schemas/order.py
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from dentalshop.schemas.cart import CartLine


class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shipping / contact fields. Blank values are reported by the order service, not by the schema.
class CustomerInfo(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    mobile: Optional[str] = None
    zip_code: Optional[str] = None


# Input schema for creating a new order from the shopper's cart lines
class OrderCreatePayload(BaseModel):
    items: List[CartLine] = Field(default_factory=list)
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)


class OrderItemInclusionOut(ORMBase):
    id: int
    inclusion_id: Optional[int] = None
    name: str
    description: str = ""
    price: Decimal


class OrderItemOut(ORMBase):
    id: int
    product_id: int
    product_name: str
    quantity: int
    price: Decimal
    line_total: Decimal
    included_items: List[OrderItemInclusionOut]


# Output schema representing the full order details
class OrderResponse(ORMBase):
    id: int
    user_id: int
    status: str
    total: Decimal
    customer_name: str
    customer_address: str
    customer_mobile: str
    customer_zip_code: str
    payment_info: dict
    created_at: Optional[datetime] = None
    items: List[OrderItemOut]


# Schema for paginated order lists
class OrdersPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int

# Schema for administrative status updates
class OrderStatusPatch(BaseModel):
    status: str
