# dentalshop/schemas/payment.py
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


# Request body for starting a hosted checkout for an existing order
class CheckoutPayload(BaseModel):
    order_id: int

class CheckoutSessionResponse(BaseModel):
    order_id: int
    checkout_session_id: str
    checkout_url: str

# Return trip from the hosted checkout page
class PaymentVerifyPayload(BaseModel):
    payment_intent_id: str = Field(min_length=1)
    order_id: int

class ReconciliationResult(BaseModel):
    success: bool = True
    order_id: int
    status: str
    already_paid: bool = False


# Provider side of a checkout session
class CheckoutSessionInfo(BaseModel):
    id: str
    checkout_url: str
    status: Optional[str] = None

# What the provider reports for a payment identifier
class PaymentVerification(BaseModel):
    reference_id: str
    status: str
    succeeded: bool
    payment_intent_id: Optional[str] = None
    amount_minor: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def amount(self) -> Optional[Decimal]:
        if self.amount_minor is None:
            return None
        return Decimal(self.amount_minor) / 100
