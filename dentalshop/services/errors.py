# dentalshop/services/errors.py
"""
Domain errors raised by the checkout services.

Each error carries the HTTP status and a machine-readable `kind` so the API
layer can report it without knowing the individual classes.
"""
from typing import Any, Dict, Iterable, Optional


class ShopError(Exception):
    status_code = 400
    kind = "shop_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.kind, **self.extra}


# Caller-correctable problems; no order is created
class ValidationError(ShopError):
    status_code = 400
    kind = "validation_error"


class EmptyCartError(ValidationError):
    kind = "empty_cart"

    def __init__(self):
        super().__init__("Cart is empty")


class MissingCustomerFieldError(ValidationError):
    kind = "missing_customer_field"

    def __init__(self, fields: Iterable[str]):
        fields = list(fields)
        super().__init__(f"Customer information is required: {', '.join(fields)}", fields=fields)


class ProductsUnavailableError(ValidationError):
    kind = "product_unavailable"

    def __init__(self, missing_product_ids: Iterable[int]):
        ids = list(missing_product_ids)
        super().__init__(
            f"The following products are no longer available (by ID): {', '.join(str(i) for i in ids)}",
            missing_product_ids=ids,
        )


class InvalidInclusionError(ValidationError):
    kind = "invalid_inclusion"

    def __init__(self, product_id: int, inclusion_ids: Iterable[int]):
        ids = list(inclusion_ids)
        super().__init__(
            f"Inclusions {ids} do not belong to product {product_id}",
            product_id=product_id,
            inclusion_ids=ids,
        )


class QuoteMismatchError(ValidationError):
    kind = "quote_mismatch"

    def __init__(self, product_ids: Iterable[int]):
        ids = list(product_ids)
        super().__init__(
            f"Prices for products {ids} match neither the catalog nor your cart, please refresh your cart",
            product_ids=ids,
        )


class NotFoundError(ShopError):
    status_code = 404
    kind = "not_found"


class OrderNotFoundError(NotFoundError):
    kind = "order_not_found"

    def __init__(self, order_id: int):
        super().__init__("Order not found", order_id=order_id)


class ProductNotFoundError(NotFoundError):
    kind = "product_not_found"

    def __init__(self, product_id: int):
        super().__init__("Product not found", product_id=product_id)


class ConflictError(ShopError):
    status_code = 409
    kind = "conflict"


class OrderStateError(ConflictError):
    kind = "invalid_order_state"

    def __init__(self, message: str, order_id: int, status: str):
        super().__init__(message, order_id=order_id, status=status)


class ProductInUseError(ConflictError):
    kind = "product_in_use"

    def __init__(self, product_id: int):
        super().__init__("Product is referenced by existing orders and cannot be deleted", product_id=product_id)


# Remote payment provider failed or rejected the request. Transient by default, the order stays pending.
class PaymentProviderError(ShopError):
    status_code = 502
    kind = "provider_error"

    def __init__(self, message: str, provider_detail: Optional[str] = None, provider_status: Optional[int] = None):
        super().__init__(message)
        # Kept for logs, not sent to the shopper
        self.provider_detail = provider_detail
        self.provider_status = provider_status


class CheckoutCreationError(PaymentProviderError):
    kind = "checkout_failed"


class PaymentVerificationError(PaymentProviderError):
    kind = "verification_failed"


class PaymentNotConfirmedError(ShopError):
    status_code = 400
    kind = "payment_not_confirmed"

    def __init__(self, order_id: int, provider_status: str):
        super().__init__(
            f"Payment not confirmed (status={provider_status})",
            order_id=order_id,
            provider_status=provider_status,
        )


class PaymentMismatchError(ConflictError):
    kind = "payment_mismatch"

    def __init__(self, message: str, order_id: int):
        super().__init__(message, order_id=order_id)
