from app.schemas.user import UserCreate, UserLogin, UserResponse, TokenResponse
from app.schemas.billing import (
    SubscriptionCreateRequest,
    CreditPurchaseRequest,
    AddonPurchaseRequest,
    PaymentIntentResponse,
)
from app.schemas.dream import DreamInterpretRequest, DreamResponse

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "TokenResponse",
    "SubscriptionCreateRequest",
    "CreditPurchaseRequest",
    "AddonPurchaseRequest",
    "PaymentIntentResponse",
    "DreamInterpretRequest",
    "DreamResponse",
]
