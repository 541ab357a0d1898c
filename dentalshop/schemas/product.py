# dentalshop/schemas/product.py
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class InclusionIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)


class InclusionOut(ORMBase):
    id: int
    product_id: int
    name: str
    description: Optional[str] = None
    price: Decimal


# Shared base attributes for product entities
class ProductBase(ORMBase):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: Decimal = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    featured: bool = False


# Schema for creating a new product together with its inclusions
class ProductCreate(ProductBase):
    inclusions: List[InclusionIn] = Field(default_factory=list)


# Schema for partial product updates
class ProductEditRequest(BaseModel):
    """Schema for PATCH requests - all fields optional. A given `inclusions` list replaces the current set."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    featured: Optional[bool] = None
    inclusions: Optional[List[InclusionIn]] = None


# Full product representation including ID
class ProductOut(ProductBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    inclusions: List[InclusionOut] = Field(default_factory=list)


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int
