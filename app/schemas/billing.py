from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

PlanName = Literal["basic", "pro"]
PackName = Literal["10", "25", "60"]
AddonKey = Literal["life_season", "recurring", "couples", "therapist_pdf", "ad_removal"]


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_method_id: str = Field(..., alias="paymentMethodId", min_length=1, max_length=255)


class SubscriptionCreateRequest(_CamelRequest):
    plan: PlanName


class CreditPurchaseRequest(_CamelRequest):
    pack: PackName


class AddonPurchaseRequest(_CamelRequest):
    addon_key: AddonKey = Field(..., alias="addonKey")


class SubscriptionCreateResponse(BaseModel):
    subscription_id: str
    status: str
    plan: str
    current_period_end: Optional[datetime] = None
    client_secret: Optional[str] = None


class SubscriptionCancelResponse(BaseModel):
    status: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime] = None


class SubscriptionStatusResponse(BaseModel):
    plan: str
    status: str
    active: bool
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    monthly_deep_used: int = 0
    monthly_deep_limit: Optional[int] = None


class PaymentIntentResponse(BaseModel):
    """Pagamento iniciado; o direito só é concedido pelo webhook"""
    payment_intent_id: str
    status: str
    client_secret: Optional[str] = None
    pack: Optional[str] = None
    credits: Optional[int] = None
    addon_key: Optional[str] = None


class CreditBalanceResponse(BaseModel):
    credits: int
    credits_earned: int
    credits_spent: int


class CreditTransactionResponse(BaseModel):
    id: UUID
    delta: int
    reason: str
    pack: Optional[str] = None
    addon_key: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AddonResponse(BaseModel):
    addon_key: str
    active: bool
    purchased_at: datetime
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdminCreditGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(..., alias="userId")
    amount: int = Field(..., ge=1, le=1000)
    reason: str = Field(..., min_length=1, max_length=50)
