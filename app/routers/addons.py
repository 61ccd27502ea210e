"""
Router de add-ons (recursos avulsos desbloqueáveis)
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from app.database import get_db
from app.dependencies.auth import get_current_user
from app.schemas.billing import AddonPurchaseRequest, AddonResponse, PaymentIntentResponse
from app.services.billing import BillingService
from app.services.catalog import ADDON_CATALOG
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/addons")
def list_addons(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Catálogo de add-ons e os que o usuário possui ativos"""
    owned = EntitlementStore(db).list_active_addons(user_id)
    return {
        "catalog": [{"addon_key": key, **addon} for key, addon in ADDON_CATALOG.items()],
        "active": [AddonResponse.model_validate(grant) for grant in owned],
    }


@router.post("/addons/purchase", response_model=PaymentIntentResponse)
def purchase_addon(
    body: AddonPurchaseRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Inicia a compra; o add-on só é ativado pelo webhook de pagamento."""
    return BillingService(EntitlementStore(db)).purchase_addon(
        user_id, body.addon_key, body.payment_method_id
    )
