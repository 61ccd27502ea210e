"""
Tokens de sessão (JWT) emitidos no login/signup
"""
import jwt
from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from uuid import UUID
import logging
from app.config import settings

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


def _secret() -> str:
    # Usa JWT_SECRET se configurado, senão SECRET_KEY
    return settings.JWT_SECRET if settings.JWT_SECRET else settings.SECRET_KEY


def create_access_token(user_id: UUID, expires_min: Optional[int] = None) -> str:
    """
    Cria o token de sessão do usuário.

    Args:
        user_id: ID do usuário
        expires_min: Tempo de expiração em minutos (padrão: JWT_EXPIRES_MIN)

    Returns:
        Token JWT assinado
    """
    if expires_min is None:
        expires_min = settings.JWT_EXPIRES_MIN

    if settings.is_production and not settings.JWT_SECRET:
        logger.warning("JWT_SECRET not configured, using SECRET_KEY (not recommended for production)")

    now = datetime.utcnow()
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_min),
        "type": TOKEN_TYPE,
    }

    token = jwt.encode(payload, _secret(), algorithm=settings.JWT_ALGORITHM)
    logger.debug(f"Access token created for user: {user_id}, expires in {expires_min} minutes")
    return token


def verify_access_token(token: str) -> UUID:
    """
    Verifica o token de sessão e retorna o ID do usuário.

    Raises:
        ValueError: Se o token for inválido, expirado ou de outro tipo
    """
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Access token expired")
        raise ValueError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid access token: {e}")
        raise ValueError("Invalid token")

    if payload.get("type") != TOKEN_TYPE:
        raise ValueError("Token is not an access token")

    try:
        return UUID(payload["sub"])
    except (ValueError, TypeError):
        raise ValueError("Token has an invalid subject")
