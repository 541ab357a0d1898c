# dentalshop/routes/orders.py
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from dentalshop.database import get_db
from dentalshop.models.order import Order
from dentalshop.models.users import User
from dentalshop.schemas.order import (
    OrderCreatePayload, OrderItemInclusionOut, OrderItemOut, OrderResponse, OrdersPage, OrderStatusPatch
)
from dentalshop.services import orders as order_service
from dentalshop.services.cart_store import CartStore, SqlCartStorage, identity_for
from dentalshop.utils.audit import client_ip, write_log_safe
from dentalshop.utils.pricing import unit_total
from dentalshop.utils.tokenJWT import get_current_user, role_required

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)


# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    items: List[OrderItemOut] = []
    for it in order.items:
        items.append(OrderItemOut(
            id=it.id,
            product_id=it.product_id,
            product_name=it.product_name,
            quantity=it.quantity,
            price=it.price,
            line_total=unit_total(it.price, it.included_items) * it.quantity,
            included_items=[OrderItemInclusionOut.model_validate(inc) for inc in it.included_items],
        ))
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        total=order.total,
        customer_name=order.customer_name,
        customer_address=order.customer_address,
        customer_mobile=order.customer_mobile,
        customer_zip_code=order.customer_zip_code,
        payment_info=order.payment_info or {},
        created_at=order.created_at,
        items=items,
    )


# Create a pending order from the submitted cart lines
@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Prices are checked against the catalog and the shopper's own saved cart
    quoted = CartStore(SqlCartStorage(db), identity_for(user_id=current_user.id)).lines
    order, created = order_service.create_order(db, payload.items, payload.customer_info, current_user, quoted)
    if not created:
        response.status_code = status.HTTP_200_OK

    write_log_safe(
        db, user_id=current_user.id, action="ORDER_CREATE", resource="orders",
        status="SUCCESS" if created else "REUSED", ip=client_ip(request),
        meta={"order_id": order.id, "total": str(order.total), "items": len(order.items)},
    )
    return _order_to_out(order)


# List the current user's orders, newest first
@router.get("", response_model=OrdersPage)
def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows, total = order_service.list_orders_for_user(db, current_user, page, page_size)
    return {"items": [_order_to_out(o) for o in rows], "total": total, "page": page, "page_size": page_size}


# Get details of a specific order (owner or admin)
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _order_to_out(order_service.get_order_for_user(db, order_id, current_user))


# Administrative status change (shipped / delivered / cancelled)
@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    order = order_service.get_order(db, order_id)
    old_status = order.status
    order = order_service.change_status(db, order, payload.status.strip().lower())

    write_log_safe(
        db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", status="SUCCESS",
        ip=client_ip(request), meta={"order_id": order.id, "old": old_status, "new": order.status},
    )
    return _order_to_out(order)
