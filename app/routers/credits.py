"""
Router para gerenciamento de créditos
"""
import logging
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from app.database import get_db
from app.dependencies.auth import get_current_user
from app.schemas.billing import (
    CreditBalanceResponse,
    CreditPurchaseRequest,
    CreditTransactionResponse,
    PaymentIntentResponse,
)
from app.services.billing import BillingService
from app.services.catalog import CREDIT_PACKS
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/credits", response_model=CreditBalanceResponse)
def get_credits(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """
    Retorna o saldo de créditos do usuário atual.
    """
    user = EntitlementStore(db).require_user(user_id)
    return {
        "credits": user.credit_balance or 0,
        "credits_earned": user.credits_earned or 0,
        "credits_spent": user.credits_spent or 0,
    }


@router.get("/credits/history", response_model=List[CreditTransactionResponse])
def get_credit_history(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    return EntitlementStore(db).list_transactions(user_id, limit=50)


@router.get("/credits/packs")
def list_credit_packs():
    return [{"pack": key, **pack} for key, pack in CREDIT_PACKS.items()]


@router.post("/credits/purchase", response_model=PaymentIntentResponse)
def purchase_credits(
    body: CreditPurchaseRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """
    Inicia a compra de um pacote de créditos.

    O saldo NÃO muda aqui: os créditos entram quando o webhook
    payment_intent.succeeded confirmar o pagamento.
    """
    return BillingService(EntitlementStore(db)).purchase_credits(
        user_id, body.pack, body.payment_method_id
    )
