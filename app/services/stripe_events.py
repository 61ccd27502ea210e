"""
Narrowing de eventos de webhook do Stripe.

O payload chega como JSON solto; aqui ele vira uma das variantes tipadas
abaixo antes de chegar no reconciler. Suporta os dois formatos de invoice
(subscription no topo ou em parent.subscription_details).
"""
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, ValidationError as PydanticValidationError
from app.exceptions import ValidationError
from app.models.subscription import SubscriptionStatus
from app.services.payment_provider import field

# Status do Stripe -> status local
REMOTE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE.value,
    "trialing": SubscriptionStatus.ACTIVE.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "unpaid": SubscriptionStatus.PAST_DUE.value,
    "paused": SubscriptionStatus.PAST_DUE.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "incomplete_expired": SubscriptionStatus.CANCELED.value,
    "incomplete": SubscriptionStatus.INCOMPLETE.value,
}


def map_remote_status(remote_status: Optional[str]) -> Optional[str]:
    """Status desconhecido retorna None (campo local fica intocado)."""
    return REMOTE_STATUS_MAP.get(remote_status)


class ProviderEvent(BaseModel):
    event_id: Optional[str] = None
    event_type: str


class InvoicePaid(ProviderEvent):
    invoice_id: str
    subscription_id: Optional[str] = None
    billing_reason: Optional[str] = None
    customer_email: Optional[str] = None
    amount_paid: int = 0


class InvoicePaymentFailed(ProviderEvent):
    invoice_id: str
    subscription_id: Optional[str] = None
    attempt_count: int = 0


class SubscriptionChanged(ProviderEvent):
    subscription_id: str


class SubscriptionDeleted(ProviderEvent):
    subscription_id: str


class PaymentSucceeded(ProviderEvent):
    payment_intent_id: str
    kind: Optional[str] = None  # credits | addon
    user_id: Optional[UUID] = None
    pack: Optional[str] = None
    credits: Optional[int] = None
    addon_key: Optional[str] = None


class ChargeRefunded(ProviderEvent):
    charge_id: str
    payment_intent_id: Optional[str] = None
    fully_refunded: bool = False


class UnhandledEvent(ProviderEvent):
    pass


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    sub = field(invoice, "subscription")
    if sub is None:
        sub = field(field(field(invoice, "parent"), "subscription_details"), "subscription")
    if isinstance(sub, dict):
        sub = sub.get("id")
    return sub


def _parse_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _parse_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_event(raw: Dict[str, Any]) -> ProviderEvent:
    """
    Converte o evento bruto (já com assinatura verificada) em uma variante tipada.

    Raises:
        ValidationError: se o evento não tiver type/data.object
    """
    event_type = field(raw, "type")
    obj = field(field(raw, "data"), "object")
    if not event_type or not isinstance(obj, dict):
        raise ValidationError("Malformed event")

    base = {"event_id": field(raw, "id"), "event_type": event_type}
    try:
        return _narrow(event_type, obj, base)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed {event_type} event") from e


def _narrow(event_type: str, obj: Dict[str, Any], base: Dict[str, Any]) -> ProviderEvent:
    if event_type in ("invoice.payment_succeeded", "invoice.paid"):
        return InvoicePaid(
            **base,
            invoice_id=field(obj, "id"),
            subscription_id=_invoice_subscription_id(obj),
            billing_reason=field(obj, "billing_reason"),
            customer_email=field(obj, "customer_email"),
            amount_paid=field(obj, "amount_paid", 0),
        )

    if event_type == "invoice.payment_failed":
        return InvoicePaymentFailed(
            **base,
            invoice_id=field(obj, "id"),
            subscription_id=_invoice_subscription_id(obj),
            attempt_count=field(obj, "attempt_count", 0),
        )

    if event_type in ("customer.subscription.updated", "customer.subscription.created"):
        return SubscriptionChanged(**base, subscription_id=field(obj, "id"))

    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(**base, subscription_id=field(obj, "id"))

    if event_type == "payment_intent.succeeded":
        meta = field(obj, "metadata", {})
        return PaymentSucceeded(
            **base,
            payment_intent_id=field(obj, "id"),
            kind=field(meta, "type"),
            user_id=_parse_uuid(field(meta, "user_id") or field(meta, "userId")),
            pack=field(meta, "pack"),
            credits=_parse_int(field(meta, "credits")),
            addon_key=field(meta, "addon_key") or field(meta, "addonKey"),
        )

    if event_type == "charge.refunded":
        payment_intent = field(obj, "payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        return ChargeRefunded(
            **base,
            charge_id=field(obj, "id"),
            payment_intent_id=payment_intent,
            fully_refunded=bool(field(obj, "refunded", False)),
        )

    return UnhandledEvent(**base)
