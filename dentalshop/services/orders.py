# dentalshop/services/orders.py
"""
Order construction and order queries.

An order is built from the shopper's cart lines: every referenced product must
still exist, each price must be the catalog price or the shopper's saved quote,
the accepted prices and inclusions are copied verbatim, and the order starts
out `pending`. Stock is left alone until the payment is confirmed.
"""
import hashlib
import json
import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from dentalshop.models.order import Order, OrderItem, OrderItemInclusion, OrderStatus
from dentalshop.models.users import User
from dentalshop.schemas.cart import CartLine
from dentalshop.schemas.order import CustomerInfo
from dentalshop.services.catalog import find_missing_product_ids, get_products_map
from dentalshop.services.errors import (
    EmptyCartError, InvalidInclusionError, MissingCustomerFieldError, OrderNotFoundError, OrderStateError,
    ProductsUnavailableError, QuoteMismatchError
)
from dentalshop.utils.pricing import cart_total, money

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("name", "address", "mobile", "zip_code")

# Administrative transitions. PAID is reachable only through payment reconciliation.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value},
    OrderStatus.DELIVERED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}


def _order_query(db: Session):
    return db.query(Order).options(
        selectinload(Order.items).selectinload(OrderItem.included_items),
        selectinload(Order.items).selectinload(OrderItem.product),
    )


def _price_is_known(price: Decimal, *accepted: Optional[Decimal]) -> bool:
    return any(money(price) == money(candidate) for candidate in accepted if candidate is not None)


def check_line_prices(db: Session, lines: List[CartLine], quoted_lines: Optional[List[CartLine]] = None) -> None:
    """
    Submitted prices must be either the live catalog price or the price the shopper
    was quoted when the product went into their saved cart. Every inclusion has to
    be one of the product's current add-ons.
    """
    products = get_products_map(db, (line.product_id for line in lines))
    quotes = {line.product_id: line for line in (quoted_lines or [])}

    mismatched: List[int] = []
    for line in lines:
        product = products[line.product_id]
        catalog = {inc.id: inc for inc in product.inclusions}
        chosen = [inc.inclusion_id for inc in line.selected_inclusions]
        unknown = [i for i in chosen if i not in catalog]
        # Each add-on is billed once per line
        repeated = sorted({i for i in chosen if i in catalog and chosen.count(i) > 1})
        if unknown or repeated:
            raise InvalidInclusionError(line.product_id, unknown or repeated)

        quote = quotes.get(line.product_id)
        quoted_inclusions = {inc.inclusion_id: inc.price for inc in quote.selected_inclusions} if quote else {}
        price_ok = _price_is_known(line.unit_price, product.price, quote.unit_price if quote else None)
        inclusions_ok = all(
            _price_is_known(inc.price, catalog[inc.inclusion_id].price, quoted_inclusions.get(inc.inclusion_id))
            for inc in line.selected_inclusions
        )
        if not (price_ok and inclusions_ok):
            mismatched.append(line.product_id)

    if mismatched:
        logger.warning("Rejected order lines with unknown prices for products %s", mismatched)
        raise QuoteMismatchError(mismatched)


def validate_order_request(
    db: Session,
    lines: List[CartLine],
    customer_info: CustomerInfo,
    quoted_lines: Optional[List[CartLine]] = None,
) -> None:
    """Fail-fast checks, in order: empty cart, blank customer fields, vanished products, prices."""
    if not lines:
        raise EmptyCartError()

    missing_fields = [f for f in CUSTOMER_FIELDS if not (getattr(customer_info, f) or "").strip()]
    if missing_fields:
        raise MissingCustomerFieldError(missing_fields)

    missing_ids = find_missing_product_ids(db, (line.product_id for line in lines))
    if missing_ids:
        raise ProductsUnavailableError(missing_ids)

    check_line_prices(db, lines, quoted_lines)


def checkout_fingerprint(user_id: int, lines: Iterable[CartLine], customer_info: CustomerInfo) -> str:
    # Same shopper, same cart content and same delivery details give the same fingerprint
    payload = {
        "user_id": user_id,
        "lines": sorted(
            (
                {
                    "product_id": line.product_id,
                    "unit_price": str(money(line.unit_price)),
                    "quantity": line.quantity,
                    "inclusions": [
                        [inc.inclusion_id, inc.name, str(money(inc.price))] for inc in line.selected_inclusions
                    ],
                }
                for line in lines
            ),
            key=lambda entry: entry["product_id"],
        ),
        "customer": {f: (getattr(customer_info, f) or "").strip() for f in CUSTOMER_FIELDS},
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


def _build_item(line: CartLine) -> OrderItem:
    return OrderItem(
        product_id=line.product_id,
        product_name=line.name,
        quantity=line.quantity,
        price=money(line.unit_price),
        included_items=[
            OrderItemInclusion(
                inclusion_id=inc.inclusion_id,
                name=inc.name,
                description=inc.description or "",
                price=money(inc.price),
            )
            for inc in line.selected_inclusions
        ],
    )


def create_order(
    db: Session,
    lines: List[CartLine],
    customer_info: CustomerInfo,
    user: User,
    quoted_lines: Optional[List[CartLine]] = None,
) -> Tuple[Order, bool]:
    """
    Returns (order, created). A retry of the same checkout returns the earlier
    pending order with created=False instead of inserting a duplicate.

    quoted_lines is the shopper's saved cart; its prices are honoured even after
    the catalog has moved.
    """
    validate_order_request(db, lines, customer_info, quoted_lines)

    fingerprint = checkout_fingerprint(user.id, lines, customer_info)
    existing = _order_query(db).filter(
        Order.user_id == user.id,
        Order.status == OrderStatus.PENDING.value,
        Order.checkout_fingerprint == fingerprint,
    ).order_by(Order.id.desc()).first()
    if existing:
        logger.info("Reusing pending order %s for user %s", existing.id, user.id)
        return existing, False

    order = Order(
        user_id=user.id,
        status=OrderStatus.PENDING.value,
        total=cart_total(lines),
        customer_name=customer_info.name.strip(),
        customer_address=customer_info.address.strip(),
        customer_mobile=customer_info.mobile.strip(),
        customer_zip_code=customer_info.zip_code.strip(),
        payment_info={},
        checkout_fingerprint=fingerprint,
        items=[_build_item(line) for line in lines],
    )
    try:
        db.add(order)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Order creation failed for user %s", user.id)
        raise

    logger.info("Order created id=%s user=%s total=%s", order.id, user.id, order.total)
    return get_order(db, order.id), True


def get_order(db: Session, order_id: int) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    if not order:
        raise OrderNotFoundError(order_id)
    return order


def get_order_for_user(db: Session, order_id: int, user: User, allow_admin: bool = True) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    is_admin = allow_admin and (user.role or "").lower() == "admin"
    # Foreign orders look exactly like missing ones
    if not order or (order.user_id != user.id and not is_admin):
        raise OrderNotFoundError(order_id)
    return order


def _page(query, page: int, page_size: int):
    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return rows, total


def list_orders_for_user(db: Session, user: User, page: int = 1, page_size: int = 10):
    return _page(_order_query(db).filter(Order.user_id == user.id), page, page_size)


def list_orders(db: Session, status: Optional[str] = None, page: int = 1, page_size: int = 10):
    query = _order_query(db)
    if status:
        query = query.filter(Order.status == status)
    return _page(query, page, page_size)


def change_status(db: Session, order: Order, new_status: str) -> Order:
    old_status = order.status
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise OrderStateError(f"Cannot change status from {old_status} to {new_status}", order.id, old_status)
    # Conditional on the status we validated against, so a concurrent payment is never overwritten
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == old_status)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        current = get_order(db, order.id)
        raise OrderStateError(f"Order status changed concurrently to {current.status}", order.id, current.status)
    logger.info("Order %s status %s -> %s", order.id, old_status, new_status)
    return get_order(db, order.id)
