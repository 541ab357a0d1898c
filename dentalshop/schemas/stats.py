# dentalshop/schemas/stats.py
from decimal import Decimal
from pydantic import BaseModel
from typing import Dict, List, Optional


class StatsSummary(BaseModel):
    total_products: int
    total_revenue: Decimal
    paid_orders: int
    average_order_value: Decimal
    orders_this_month: int
    orders_previous_month: int
    sales_growth_percent: Optional[float] = None
    orders_by_status: Dict[str, int]
    low_stock_products: int


class InventoryProduct(BaseModel):
    id: int
    name: str
    category: Optional[str] = None
    stock: int
    price: Decimal
    status: str


class InventorySummary(BaseModel):
    total_products: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    total_value: Decimal


class InventoryResponse(BaseModel):
    products: List[InventoryProduct]
    low_stock_alerts: List[InventoryProduct]
    summary: InventorySummary


# Schema for top selling products
class TopProduct(BaseModel):
    product_id: int
    product_name: str
    total_quantity_sold: int

class TopProductsResponse(BaseModel):
    data: List[TopProduct]
