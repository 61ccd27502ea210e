"""
Router de autenticação (signup, login, perfil atual)
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from uuid import UUID
from app.config import settings
from app.database import get_db
from app.dependencies.auth import get_current_user
from app.middleware.rate_limit import limiter
from app.schemas.user import PasswordChange, TokenResponse, UserCreate, UserLogin, UserResponse
from app.services import auth_service
from app.services.entitlement_store import EntitlementStore
from app.utils.jwt_utils import create_access_token

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/auth/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def signup(
    request: Request,
    body: UserCreate,
    db: Session = Depends(get_db)
):
    """
    Cria a conta e retorna um token de sessão.
    O saldo inicial de créditos é o bônus de cadastro.
    """
    user = auth_service.signup(
        db,
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        locale=body.locale,
    )
    return {
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "user": UserResponse.model_validate(user),
    }


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def login(
    request: Request,
    body: UserLogin,
    db: Session = Depends(get_db)
):
    user = auth_service.authenticate(db, body.email, body.password)
    return {
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "user": UserResponse.model_validate(user),
    }


@router.post("/auth/change-password")
@limiter.limit(settings.RATE_LIMIT_AUTH)
def change_password(
    request: Request,
    body: PasswordChange,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Senha atual incorreta retorna 401."""
    auth_service.change_password(db, user_id, body.current_password, body.new_password)
    return {"message": "Password updated successfully"}


@router.get("/auth/me", response_model=UserResponse)
def me(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    return EntitlementStore(db).require_user(user_id)
