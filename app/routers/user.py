"""
Router de conta do usuário (preferências, perfil, exclusão)
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from app.database import get_db
from app.dependencies.auth import get_current_user
from app.exceptions import Conflict, ValidationError
from app.models.user import User
from app.schemas.user import PreferencesUpdate, ProfileUpdate, UserResponse
from app.services.billing import BillingService
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.patch("/account/preferences", response_model=UserResponse)
def update_preferences(
    body: PreferencesUpdate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("No preferences to update")

    user = EntitlementStore(db).require_user(user_id)
    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)

    logger.info(f"Preferences updated: user_id={user_id}, fields={sorted(changes)}")
    return user


@router.patch("/account/profile", response_model=UserResponse)
def update_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("No profile fields to update")

    user = EntitlementStore(db).require_user(user_id)

    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
        taken = db.query(User).filter(
            User.email == changes["email"],
            User.id != user_id
        ).first()
        if taken:
            raise Conflict("Email already in use")

    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)

    logger.info(f"Profile updated: user_id={user_id}, fields={sorted(changes)}")
    return user


@router.delete("/account")
def delete_account(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """
    Exclui a conta (soft delete).

    A assinatura no Stripe é cancelada imediatamente antes. Se o Stripe
    falhar, a conta não é alterada. Assinatura, ledger e add-ons
    ficam preservados para auditoria.
    """
    store = EntitlementStore(db)
    BillingService(store).cancel_for_erasure(user_id)
    store.soft_delete_user(user_id)

    return {
        "message": "Account deleted",
        "deleted_at": store.db.query(User.deleted_at).filter(User.id == user_id).scalar(),
    }
