# dentalshop/routes/payments.py
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from dentalshop.config import settings
from dentalshop.database import get_db
from dentalshop.models.users import User
from dentalshop.schemas.payment import (
    CheckoutPayload, CheckoutSessionResponse, PaymentVerifyPayload, ReconciliationResult
)
from dentalshop.services import orders as order_service
from dentalshop.services.cart_store import CartStore, SqlCartStorage, identity_for
from dentalshop.services.checkout import create_checkout_session
from dentalshop.services.errors import PaymentNotConfirmedError
from dentalshop.services.payments import reconcile_payment
from dentalshop.utils.audit import client_ip, write_log_safe
from dentalshop.utils.paymongo_client import get_payment_provider, verify_webhook_signature
from dentalshop.utils.tokenJWT import get_current_user

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger(__name__)

PAID_EVENTS = {"checkout_session.payment.paid"}


def _clear_owner_cart(db: Session, user_id: int):
    # The cart survives failed checkouts, it is emptied only once the payment is confirmed
    CartStore(SqlCartStorage(db), identity_for(user_id=user_id)).clear()


# Start the hosted checkout for one of the current user's pending orders
@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout(
    payload: CheckoutPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider=Depends(get_payment_provider),
):
    order = order_service.get_order_for_user(db, payload.order_id, current_user, allow_admin=False)
    session = await create_checkout_session(db, order, provider, current_user.name, current_user.email)

    write_log_safe(
        db, user_id=current_user.id, action="CHECKOUT_SESSION_CREATE", resource="payments", status="SUCCESS",
        ip=client_ip(request), meta={"order_id": payload.order_id, "checkout_session_id": session.id},
    )
    return CheckoutSessionResponse(
        order_id=payload.order_id, checkout_session_id=session.id, checkout_url=session.checkout_url
    )


# Return trip from the hosted checkout page (order owner or admin)
@router.post("/verify", response_model=ReconciliationResult)
async def verify_payment(
    payload: PaymentVerifyPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider=Depends(get_payment_provider),
):
    # Foreign orders are reported as missing before the provider is ever asked
    order = order_service.get_order_for_user(db, payload.order_id, current_user)
    result = await reconcile_payment(db, provider, payload.payment_intent_id, order.id)

    if not result.already_paid:
        _clear_owner_cart(db, order.user_id)

    write_log_safe(
        db, user_id=current_user.id, action="PAYMENT_RECONCILE", resource="payments",
        status="NOOP" if result.already_paid else "SUCCESS", ip=client_ip(request),
        meta={"order_id": result.order_id, "payment_id": payload.payment_intent_id, "owner_id": order.user_id},
    )
    return result


# PayMongo webhook, replays are harmless because reconciliation is idempotent
@router.post("/webhook")
async def paymongo_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider=Depends(get_payment_provider),
    paymongo_signature: str = Header(None, alias="Paymongo-Signature"),
):
    if paymongo_signature is None:
        raise HTTPException(status_code=400, detail="Missing Paymongo-Signature header")

    body = await request.body()
    if not verify_webhook_signature(paymongo_signature, body, settings.PAYMONGO_WEBHOOK_SECRET):
        logger.warning("PayMongo webhook signature verification failed")
        raise HTTPException(status_code=403, detail="Signature verification failed")

    try:
        event = json.loads(body)
        attributes = event["data"]["attributes"]
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Malformed event")

    event_type = attributes.get("type")
    logger.info("PayMongo webhook received: %s", event_type)
    if event_type not in PAID_EVENTS:
        return {"status": "ignored"}

    resource = attributes.get("data") or {}
    resource_attrs = resource.get("attributes") or {}
    order_id = (resource_attrs.get("metadata") or {}).get("order_id")
    if not resource.get("id") or not order_id:
        return {"status": "error", "message": "Missing checkout session or order id"}
    try:
        order_id = int(order_id)
    except ValueError:
        return {"status": "error", "message": "Invalid order id"}

    try:
        result = await reconcile_payment(db, provider, resource["id"], order_id)
    except PaymentNotConfirmedError:
        return {"status": "pending"}

    order = order_service.get_order(db, result.order_id)
    if not result.already_paid:
        _clear_owner_cart(db, order.user_id)
    write_log_safe(
        db, user_id=order.user_id, action="PAYMONGO_WEBHOOK", resource="payments",
        status="NOOP" if result.already_paid else "SUCCESS", ip=client_ip(request),
        meta={"order_id": result.order_id, "event": event_type},
    )
    return {"status": "ok", "order_status": result.status}
