# dentalshop/services/checkout.py
"""
Hosted checkout hand-off: converts a pending order into a PayMongo checkout session.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from sqlalchemy.orm import Session

from dentalshop.config import settings
from dentalshop.models.order import Order, OrderStatus
from dentalshop.schemas.payment import CheckoutSessionInfo
from dentalshop.services.errors import CheckoutCreationError, OrderStateError
from dentalshop.utils.pricing import format_amount, to_minor_units

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "/images/placeholder-inclusion.png"


def _image_url(path: Optional[str], base_url: str) -> str:
    if path and path.startswith(("http://", "https://")):
        return path
    return urljoin(base_url.rstrip("/") + "/", (path or PLACEHOLDER_IMAGE).lstrip("/"))


def build_line_items(order: Order, currency: str, base_url: str) -> List[Dict[str, Any]]:
    """
    One provider line item per ordered product, plus one per selected inclusion.
    Inclusions are billed separately, with the parent's quantity and image.
    """
    line_items: List[Dict[str, Any]] = []
    for item in order.items:
        image = _image_url(item.product.image_url if item.product else None, base_url)
        line_items.append({
            "amount": to_minor_units(item.price),
            "currency": currency,
            "description": item.product_name,
            "images": [image],
            "name": item.product_name,
            "quantity": item.quantity,
        })
        for inclusion in item.included_items:
            line_items.append({
                "amount": to_minor_units(inclusion.price),
                "currency": currency,
                "description": f"Inclusion for {item.product_name}",
                "images": [image],
                "name": inclusion.name,
                "quantity": item.quantity,
            })
    return line_items


def checkout_urls(order_id: int, base_url: str) -> Dict[str, str]:
    # {CHECKOUT_ID} is substituted by PayMongo with the checkout session id
    base = base_url.rstrip("/")
    return {
        "success_url": f"{base}/checkout?payment_intent_id={{CHECKOUT_ID}}&order_id={order_id}",
        "cancel_url": f"{base}/cart",
    }


async def create_checkout_session(
    db: Session,
    order: Order,
    provider,
    billing_name: Optional[str],
    billing_email: str,
) -> CheckoutSessionInfo:
    if order.status != OrderStatus.PENDING.value:
        raise OrderStateError("Only pending orders can be paid", order.id, order.status)

    base_url = settings.FRONTEND_URL
    line_items = build_line_items(order, settings.CURRENCY, base_url)

    # What the provider charges has to match the quoted order total
    charged = sum(li["amount"] * li["quantity"] for li in line_items)
    expected = to_minor_units(order.total)
    if charged != expected:
        logger.error("Order %s line items sum to %s, order total is %s", order.id, charged, expected)
        raise CheckoutCreationError(
            "Order total does not match its line items",
            provider_detail=f"line_items={charged} total={expected}",
        )

    attributes = {
        "line_items": line_items,
        "payment_method_types": list(settings.PAYMENT_METHOD_TYPES),
        "description": f"Order #{order.id}",
        "reference_number": str(order.id),
        "send_email_receipt": False,
        "show_description": True,
        "show_line_items": True,
        "billing": {
            "name": billing_name or order.customer_name or "Customer",
            "email": billing_email,
            "phone": order.customer_mobile,
        },
        "metadata": {
            "order_id": str(order.id),
            "user_id": str(order.user_id),
            "total": str(order.total),
        },
        **checkout_urls(order.id, base_url),
    }

    try:
        session = await provider.create_checkout_session(attributes)
    except CheckoutCreationError as e:
        logger.error("Checkout session for order %s failed: %s (%s)", order.id, e.message, e.provider_detail)
        raise

    # A retried checkout replaces the previous session id; the order itself stays pending
    info = dict(order.payment_info or {})
    info.update({
        "provider": "paymongo",
        "checkout_session_id": session.id,
        "checkout_requested_at": datetime.now(timezone.utc).isoformat(),
    })
    order.payment_info = info
    db.commit()

    logger.info("Checkout session %s created for order %s (%s)",
                session.id, order.id, format_amount(order.total, settings.CURRENCY))
    return session
