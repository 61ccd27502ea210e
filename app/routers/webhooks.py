"""
Webhook do Stripe
"""
import json
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.exceptions import InternalError, ValidationError
from app.services import payment_provider
from app.services.entitlement_store import EntitlementStore
from app.services.reconciler import PaymentEventReconciler
from app.services.stripe_events import parse_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Recebe eventos do Stripe.

    - Assinatura inválida: 400, nada é alterado
    - Evento desconhecido: 200 (evita reenvios inúteis)
    - Falha ao aplicar o evento: 500, para o Stripe reenviar
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise ValidationError("Missing stripe-signature header")

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise InternalError("Webhook secret not configured")

    payment_provider.verify_webhook(payload, sig_header)

    try:
        raw_event = json.loads(payload)
    except ValueError as e:
        raise ValidationError("Invalid payload") from e

    event = parse_event(raw_event)
    logger.info(f"Processing Stripe webhook event: {event.event_type} ({event.event_id})")

    reconciler = PaymentEventReconciler(EntitlementStore(db))
    try:
        outcome = await run_in_threadpool(reconciler.apply, event)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to apply Stripe event {event.event_type} ({event.event_id}): {e}", exc_info=True)
        raise InternalError("Webhook processing failed") from e

    return {"received": True, "outcome": outcome}
