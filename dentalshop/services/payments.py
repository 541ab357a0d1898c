# dentalshop/services/payments.py
"""
Payment reconciliation.

Runs when the shopper comes back from the hosted checkout page (and on provider
webhooks). Confirms the payment with the provider, then moves the order from
`pending` to `paid` and decrements stock, in one transaction. The status update
is conditional on the order still being pending, so however many times this
runs for an order, stock is decremented exactly once.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dentalshop.models.order import Order, OrderStatus
from dentalshop.models.product import Product
from dentalshop.schemas.payment import PaymentVerification, ReconciliationResult
from dentalshop.services.errors import (
    OrderStateError, PaymentMismatchError, PaymentNotConfirmedError
)
from dentalshop.services.orders import get_order
from dentalshop.utils.pricing import to_minor_units

logger = logging.getLogger(__name__)

# Statuses that can only be reached after a confirmed payment
SETTLED_STATUSES = {OrderStatus.PAID.value, OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value}


def _check_correlation(order: Order, verification: PaymentVerification) -> None:
    meta_order_id = verification.metadata.get("order_id")
    if meta_order_id is not None and str(meta_order_id) != str(order.id):
        raise PaymentMismatchError(
            f"Payment {verification.reference_id} belongs to order {meta_order_id}", order.id
        )
    if verification.amount_minor is not None and verification.amount_minor != to_minor_units(order.total):
        raise PaymentMismatchError(
            f"Paid amount {verification.amount} does not match order total {order.total}", order.id
        )


def apply_payment(db: Session, order: Order, verification: PaymentVerification) -> bool:
    """
    pending -> paid plus the stock decrements, atomically.
    Returns False when the order was no longer pending (another call got there first).
    """
    payment_info = dict(order.payment_info or {})
    payment_info.update({
        "status": OrderStatus.PAID.value,
        "payment_intent_id": verification.payment_intent_id or verification.reference_id,
        "reference_id": verification.reference_id,
        "verified_at": datetime.now(timezone.utc).isoformat(),
    })
    quantities = [(item.product_id, item.quantity) for item in order.items]

    try:
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING.value)
            .values(status=OrderStatus.PAID.value, payment_info=payment_info)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            return False

        for product_id, quantity in quantities:
            db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("CRITICAL: failed to apply confirmed payment to order %s", order.id)
        raise

    oversold = (
        db.query(Product.id, Product.stock)
        .filter(Product.id.in_([pid for pid, _ in quantities]), Product.stock < 0)
        .all()
    )
    for product_id, stock in oversold:
        logger.warning("Product %s oversold by order %s, stock is now %s", product_id, order.id, stock)
    return True


async def reconcile_payment(db: Session, provider, payment_identifier: str, order_id: int) -> ReconciliationResult:
    order = get_order(db, order_id)

    if order.status in SETTLED_STATUSES:
        logger.info("Order %s already %s, reconciliation is a no-op", order.id, order.status)
        return ReconciliationResult(order_id=order.id, status=order.status, already_paid=True)
    if order.status != OrderStatus.PENDING.value:
        logger.error("Payment %s returned for order %s in status %s", payment_identifier, order.id, order.status)
        raise OrderStateError(f"Order is {order.status}", order.id, order.status)

    # Provider errors propagate untouched, the order stays pending
    verification = await provider.retrieve_payment(payment_identifier)
    if not verification.succeeded:
        logger.info("Payment %s for order %s not confirmed: %s", payment_identifier, order.id, verification.status)
        raise PaymentNotConfirmedError(order.id, verification.status)

    _check_correlation(order, verification)

    transitioned = apply_payment(db, order, verification)
    order = get_order(db, order_id)
    if not transitioned:
        if order.status in SETTLED_STATUSES:
            logger.info("Order %s was reconciled concurrently", order.id)
            return ReconciliationResult(order_id=order.id, status=order.status, already_paid=True)
        raise OrderStateError(f"Order is {order.status}", order.id, order.status)

    logger.info("Order %s paid via %s", order.id, verification.reference_id)
    return ReconciliationResult(order_id=order.id, status=order.status, already_paid=False)
