"""
Router administrativo
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from app.database import get_db
from app.dependencies.auth import get_current_admin
from app.schemas.billing import AdminCreditGrantRequest
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/admin/credits/grant")
def grant_credits(
    body: AdminCreditGrantRequest,
    db: Session = Depends(get_db),
    admin_id: UUID = Depends(get_current_admin)
):
    balance = EntitlementStore(db).adjust_credits(
        body.user_id,
        body.amount,
        reason=f"admin:{body.reason}",
    )
    logger.info(f"Admin {admin_id} granted {body.amount} credits to {body.user_id}")
    return {"user_id": body.user_id, "credits": balance}
