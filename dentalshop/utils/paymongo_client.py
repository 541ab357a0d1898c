# dentalshop/utils/paymongo_client.py
import hashlib
import hmac
import httpx
import logging
from typing import Optional

from dentalshop.config import settings
from dentalshop.schemas.payment import CheckoutSessionInfo, PaymentVerification
from dentalshop.services.errors import (
    CheckoutCreationError, PaymentProviderError, PaymentVerificationError
)

logger = logging.getLogger(__name__)

PAID_STATUSES = {"succeeded", "paid"}


def _error_detail(response: httpx.Response) -> str:
    # PayMongo returns {"errors": [{"code": ..., "detail": ...}]}
    try:
        body = response.json()
        return body["errors"][0]["detail"]
    except (ValueError, KeyError, IndexError, TypeError):
        return response.text[:500]


class PaymongoClient:
    def __init__(self, api_url: str = None, secret_key: str = None, timeout: float = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = (api_url or settings.PAYMONGO_API_URL).rstrip("/")
        self.secret_key = settings.PAYMONGO_SECRET_KEY if secret_key is None else secret_key
        self.timeout = timeout or settings.PAYMONGO_TIMEOUT_SECONDS
        # Injectable transport, used by tests
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            auth=(self.secret_key, ""),
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        )

    def _require_key(self, error_cls):
        if not self.secret_key:
            raise error_cls("Payment provider is not configured", provider_detail="PayMongo secret key is not configured")

    async def _request(self, method: str, path: str, error_cls, json: dict = None) -> dict:
        self._require_key(error_cls)
        async with self._client() as client:
            try:
                response = await client.request(method, path, json=json)
            except httpx.TimeoutException as e:
                logger.error("PayMongo %s %s timed out: %s", method, path, e)
                raise error_cls("Payment provider timed out", provider_detail=str(e)) from e
            except httpx.RequestError as e:
                logger.error("PayMongo %s %s request error: %s", method, path, e)
                raise error_cls("Payment provider is unreachable", provider_detail=str(e)) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("PayMongo %s %s failed: status=%s detail=%s", method, path, response.status_code, detail)
            raise error_cls("Payment provider rejected the request", provider_detail=detail,
                            provider_status=response.status_code)
        try:
            data = response.json()["data"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Invalid PayMongo response for %s %s: %s", method, path, response.text[:500])
            raise error_cls("Invalid response from payment provider", provider_detail=response.text[:500]) from e
        if not isinstance(data, dict):
            raise error_cls("Invalid response from payment provider", provider_detail=str(data)[:500])
        return data

    async def create_checkout_session(self, attributes: dict) -> CheckoutSessionInfo:
        # Create a hosted checkout page for the given line items
        data = await self._request(
            "POST", "/checkout_sessions", CheckoutCreationError, json={"data": {"attributes": attributes}}
        )
        attrs = data.get("attributes") or {}
        if not data.get("id") or not attrs.get("checkout_url"):
            raise CheckoutCreationError("Invalid response from payment provider", provider_detail=str(data)[:500])
        logger.info("PayMongo checkout session created id=%s status=%s", data["id"], attrs.get("status"))
        return CheckoutSessionInfo(id=data["id"], checkout_url=attrs["checkout_url"], status=attrs.get("status"))

    async def retrieve_payment(self, identifier: str) -> PaymentVerification:
        """
        Look up the payment state for a checkout session id (cs_...) or a payment intent id.
        A checkout session is paid once its payment intent has succeeded.
        """
        if identifier.startswith("cs_"):
            data = await self._request("GET", f"/checkout_sessions/{identifier}", PaymentVerificationError)
            attrs = data.get("attributes") or {}
            intent = attrs.get("payment_intent") or {}
            intent_attrs = intent.get("attributes") or {}
            status = intent_attrs.get("status") or attrs.get("status") or "unknown"
            paid = any(
                (p.get("attributes") or {}).get("status") == "paid" for p in attrs.get("payments") or []
            )
            return PaymentVerification(
                reference_id=data.get("id", identifier),
                status=status,
                succeeded=status in PAID_STATUSES or paid,
                payment_intent_id=intent.get("id"),
                amount_minor=intent_attrs.get("amount"),
                metadata=attrs.get("metadata") or {},
            )

        data = await self._request("GET", f"/payment_intents/{identifier}", PaymentVerificationError)
        attrs = data.get("attributes") or {}
        status = attrs.get("status") or "unknown"
        return PaymentVerification(
            reference_id=data.get("id", identifier),
            status=status,
            succeeded=status in PAID_STATUSES,
            payment_intent_id=data.get("id", identifier),
            amount_minor=attrs.get("amount"),
            metadata=attrs.get("metadata") or {},
        )

    async def verify_payment(self, identifier: str) -> bool:
        verification = await self.retrieve_payment(identifier)
        return verification.succeeded


def verify_webhook_signature(header_signature: str, request_body: bytes, secret: str) -> bool:
    """Verifies the Paymongo-Signature header (t=<ts>,te=<test sig>,li=<live sig>)."""
    if not header_signature or not secret:
        return False
    try:
        parts = dict(p.split("=", 1) for p in header_signature.split(","))
    except ValueError:
        return False

    timestamp = parts.get("t")
    if not timestamp:
        return False

    signed = timestamp.encode("utf-8") + b"." + request_body
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    candidates = [parts.get("te"), parts.get("li")]
    return any(c and hmac.compare_digest(expected, c) for c in candidates)


paymongo_client = PaymongoClient()


def get_payment_provider() -> PaymongoClient:
    return paymongo_client
