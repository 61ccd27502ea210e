from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from uuid import UUID
import logging
from app.database import get_db
from app.exceptions import AuthError, Forbidden
from app.models.user import User
from app.services.entitlement_store import EntitlementStore
from app.utils.jwt_utils import verify_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def parse_raw_auth_header(request: Request) -> Optional[str]:
    """Retorna o token puro caso Authorization não siga o esquema 'Bearer <token>'."""
    header = request.headers.get("authorization")
    if not header:
        return None
    parts = header.strip().split()
    if len(parts) == 1:
        return parts[0]
    if len(parts) >= 2:
        return parts[1]
    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    cred: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UUID:
    """
    Dependência para rotas autenticadas.
    - Aceita 'Authorization: Bearer <token>' (padrão) ou só '<token>'
    - Usuário apagado (soft delete) não autentica
    """
    token = cred.credentials if cred else parse_raw_auth_header(request)
    if not token:
        raise AuthError("Authorization header missing")

    try:
        user_id = verify_access_token(token)
    except ValueError as e:
        raise AuthError(str(e))

    user = db.query(User).filter(
        User.id == user_id,
        User.is_deleted.is_(False)
    ).first()
    if not user:
        logger.warning(f"Token for unknown or deleted user: {user_id}")
        raise AuthError("User not found or deleted")

    return user.id


def get_current_admin(
    user_id: UUID = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UUID:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.role != "admin":
        raise Forbidden("Admin role required")
    return user_id


def require_addon(addon_key: str):
    """Fábrica de dependência: exige um add-on ativo (403 se ausente ou expirado)."""

    def dependency(
        user_id: UUID = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> UUID:
        if EntitlementStore(db).get_active_addon(user_id, addon_key) is None:
            raise Forbidden(f"The {addon_key} add-on is required")
        return user_id

    return dependency
