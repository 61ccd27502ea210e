"""
Router de assinaturas (Stripe)
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID
from app.database import get_db
from app.dependencies.auth import get_current_user
from app.schemas.billing import (
    SubscriptionCancelResponse,
    SubscriptionCreateRequest,
    SubscriptionCreateResponse,
    SubscriptionStatusResponse,
)
from app.services.billing import BillingService
from app.services.catalog import PLANS
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/subscriptions/plans")
def list_plans():
    return [
        {"plan": key, "name": plan["name"], "amount_cents": plan["amount_cents"],
         "monthly_deep_limit": plan["monthly_deep_limit"]}
        for key, plan in PLANS.items()
    ]


@router.post(
    "/subscriptions/create",
    response_model=SubscriptionCreateResponse,
    status_code=status.HTTP_201_CREATED
)
def create_subscription(
    body: SubscriptionCreateRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """
    Cria a assinatura no Stripe com o payment method informado.

    O status retornado é provisório (normalmente "incomplete" até a
    confirmação do pagamento); os webhooks atualizam o estado depois.
    """
    return BillingService(EntitlementStore(db)).create_subscription(
        user_id, body.plan, body.payment_method_id
    )


@router.post("/subscriptions/cancel", response_model=SubscriptionCancelResponse)
def cancel_subscription(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Cancela no fim do período pago."""
    return BillingService(EntitlementStore(db)).cancel_subscription(user_id)


@router.post("/subscriptions/resume", response_model=SubscriptionCancelResponse)
def resume_subscription(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Mantém a assinatura que estava agendada para cancelar."""
    return BillingService(EntitlementStore(db)).resume_subscription(user_id)


@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
def subscription_status(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    return BillingService(EntitlementStore(db)).subscription_status(user_id)
