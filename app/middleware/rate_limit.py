"""
Rate limiting por IP (slowapi). Em produção o storage é o Redis
(RATE_LIMIT_STORAGE_URI=redis://...).
"""
import logging
from fastapi import Request
from slowapi import Limiter
from app.config import settings

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """
    Chave de rate limiting baseada no IP do cliente.
    Atrás de proxy, usa o primeiro IP de X-Forwarded-For.
    """
    client_ip = request.client.host if request.client else "unknown"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()

    return f"ip:{client_ip}"


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.RATE_LIMIT_PER_IP],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)
