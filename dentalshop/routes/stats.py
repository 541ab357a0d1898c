# dentalshop/routes/stats.py

from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from dentalshop.config import settings
from dentalshop.database import get_db
from dentalshop.models.order import Order, OrderItem
from dentalshop.models.product import Product
from dentalshop.models.users import User
from dentalshop.schemas.stats import (
    InventoryProduct, InventoryResponse, InventorySummary, StatsSummary, TopProductsResponse
)
from dentalshop.services.payments import SETTLED_STATUSES
from dentalshop.utils.pricing import money
from dentalshop.utils.tokenJWT import role_required

router = APIRouter(
    prefix="/stats",
    tags=["Stats"]
)


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def _month_bounds(now: datetime):
    """Start of the previous month, this month and the next one (naive UTC)."""
    this_month = _month_start(now.year, now.month)
    prev_month = _month_start(now.year - 1, 12) if now.month == 1 else _month_start(now.year, now.month - 1)
    next_month = _month_start(now.year + 1, 1) if now.month == 12 else _month_start(now.year, now.month + 1)
    return prev_month, this_month, next_month


def stock_status(stock: int, threshold: int) -> str:
    if stock <= 0:
        return "out_of_stock"
    if stock <= threshold:
        return "low_stock"
    return "in_stock"


# === Endpoint 1: Dashboard Summary ===

@router.get("/summary", response_model=StatsSummary)
def get_stats_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    total_products = db.query(func.count(Product.id)).scalar() or 0

    # Revenue counts every order whose payment was confirmed
    revenue = db.query(func.sum(Order.total)).filter(Order.status.in_(SETTLED_STATUSES)).scalar()
    # SQLite may hand back a float for SUM over Numeric
    total_revenue = money(Decimal(str(revenue or 0)))
    paid_orders = db.query(Order).filter(Order.status.in_(SETTLED_STATUSES)).count()
    average_order_value = money(total_revenue / paid_orders) if paid_orders else money(0)

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    prev_month, this_month, next_month = _month_bounds(now)

    orders_this_month = db.query(Order).filter(
        Order.created_at >= this_month, Order.created_at < next_month
    ).count()
    orders_previous_month = db.query(Order).filter(
        Order.created_at >= prev_month, Order.created_at < this_month
    ).count()

    sales_growth = None
    if orders_previous_month:
        sales_growth = round((orders_this_month - orders_previous_month) / orders_previous_month * 100, 2)

    by_status = dict(
        db.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )

    low_stock_products = db.query(Product).filter(
        Product.stock <= settings.LOW_STOCK_THRESHOLD
    ).count()

    return StatsSummary(
        total_products=total_products,
        total_revenue=total_revenue,
        paid_orders=paid_orders,
        average_order_value=average_order_value,
        orders_this_month=orders_this_month,
        orders_previous_month=orders_previous_month,
        sales_growth_percent=sales_growth,
        orders_by_status=by_status,
        low_stock_products=low_stock_products,
    )

# === Endpoint 2: Inventory ===

@router.get("/inventory", response_model=InventoryResponse)
def get_inventory(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    threshold = settings.LOW_STOCK_THRESHOLD
    products = db.query(Product).order_by(Product.stock.asc(), Product.name.asc()).all()

    rows = [
        InventoryProduct(
            id=p.id,
            name=p.name,
            category=p.category,
            stock=p.stock,
            price=p.price,
            status=stock_status(p.stock, threshold),
        )
        for p in products
    ]

    counts = {"in_stock": 0, "low_stock": 0, "out_of_stock": 0}
    total_value = Decimal("0")
    for row in rows:
        counts[row.status] += 1
        # Oversold products carry negative stock and add no value
        total_value += row.price * max(row.stock, 0)

    return InventoryResponse(
        products=rows,
        low_stock_alerts=[r for r in rows if r.status != "in_stock"],
        summary=InventorySummary(total_products=len(rows), total_value=money(total_value), **counts),
    )

# === Endpoint 3: Top Products ===

@router.get("/top-products", response_model=TopProductsResponse)
def get_top_products_stats(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    # Aggregate quantities over confirmed orders only, sort descending
    top_products_query = (
        db.query(
            OrderItem.product_id.label("product_id"),
            OrderItem.product_name.label("product_name"),
            func.sum(OrderItem.quantity).label("total_quantity_sold")
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status.in_(SETTLED_STATUSES))
        .group_by(OrderItem.product_id, OrderItem.product_name)
        .order_by(func.sum(OrderItem.quantity).desc(), OrderItem.product_id.asc())
        .limit(limit)
        .all()
    )

    return TopProductsResponse(data=[
        {"product_id": r.product_id, "product_name": r.product_name, "total_quantity_sold": int(r.total_quantity_sold)}
        for r in top_products_query
    ])
