# dentalshop/schemas/cart.py
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


# Add-on chosen for a cart line, priced at the moment it was added
class SelectedInclusion(BaseModel):
    model_config = ConfigDict(frozen=True)

    inclusion_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)


# One product in the cart. Name, price and inclusions are snapshots, not live catalog data.
class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = None
    selected_inclusions: List[SelectedInclusion] = Field(default_factory=list)


# Whole cart snapshot, persisted per shopper identity
class CartState(BaseModel):
    model_config = ConfigDict(frozen=True)

    lines: List[CartLine] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")


# Request schema for adding a catalog product to the cart
class CartAddItem(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    inclusion_ids: List[int] = Field(default_factory=list)

# Request schema for updating a cart line quantity
class CartUpdateItem(BaseModel):
    quantity: int = Field(ge=1)

# Response schema for a single cart line
class CartLineOut(CartLine):
    line_total: Decimal

# Response schema for the entire cart summary
class CartOut(BaseModel):
    identity: str
    lines: List[CartLineOut]
    total: Decimal
