"""
Cliente do provider de pagamento (Stripe).

Toda chamada ao Stripe passa por aqui: erros do SDK são traduzidos para a
taxonomia da API (CardDeclined -> 402, demais -> 502) e os objetos remotos
são reduzidos a modelos tipados antes de chegar na lógica de negócio.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID
import stripe
from pydantic import BaseModel
from app.config import settings
from app.exceptions import CardDeclined, UpstreamProviderError, ValidationError

logger = logging.getLogger(__name__)

# Configurar Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


class RemoteSubscription(BaseModel):
    """Estado autoritativo de uma assinatura no Stripe"""
    id: str
    customer_id: Optional[str] = None
    status: str
    price_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    user_id: Optional[str] = None
    client_secret: Optional[str] = None


class RemotePaymentIntent(BaseModel):
    id: str
    status: str
    client_secret: Optional[str] = None


def field(obj: Any, key: str, default: Any = None) -> Any:
    """Leitura tolerante de dicts e StripeObjects"""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, IndexError, TypeError):
        return default
    return default if value is None else value


def to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    """Epoch (segundos) -> datetime UTC naive"""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).replace(tzinfo=None)


@contextmanager
def _stripe_call(operation: str):
    try:
        yield
    except stripe.CardError as e:
        logger.warning(f"Card declined during {operation}: code={e.code}, decline_code={getattr(e, 'decline_code', None)}")
        raise CardDeclined(e.user_message or str(e)) from e
    except stripe.StripeError as e:
        logger.error(
            f"Stripe error during {operation}: type={type(e).__name__}, "
            f"code={e.code}, http_status={e.http_status}, message={e.user_message or e}"
        )
        raise UpstreamProviderError() from e


def _remote_subscription(sub: Any) -> RemoteSubscription:
    items = field(field(sub, "items"), "data", [])
    first_item = items[0] if items else None

    # API recente: período fica no item da assinatura
    period_end = field(sub, "current_period_end") or field(first_item, "current_period_end")

    latest_invoice = field(sub, "latest_invoice")
    client_secret = (
        field(field(latest_invoice, "confirmation_secret"), "client_secret")
        or field(field(latest_invoice, "payment_intent"), "client_secret")
    )

    return RemoteSubscription(
        id=field(sub, "id"),
        customer_id=field(sub, "customer"),
        status=field(sub, "status", "incomplete"),
        price_id=field(field(first_item, "price"), "id"),
        current_period_end=to_datetime(period_end),
        cancel_at_period_end=bool(field(sub, "cancel_at_period_end", False)),
        user_id=field(field(sub, "metadata"), "user_id"),
        client_secret=client_secret if isinstance(client_secret, str) else None,
    )


def create_customer(email: str, name: Optional[str], user_id: UUID) -> str:
    with _stripe_call("customer.create"):
        customer = stripe.Customer.create(
            email=email,
            name=name,
            metadata={"user_id": str(user_id)},
        )
    logger.info(f"Created Stripe customer: {customer['id']} for user: {user_id}")
    return customer["id"]


def attach_payment_method(
    payment_method_id: str,
    customer_id: str,
    set_default: bool = False,
    tolerate_attached: bool = False,
) -> None:
    """
    Anexa o payment method ao customer.

    Com tolerate_attached, falhas de requisição inválida no attach (método já
    anexado) não interrompem o fluxo: o PaymentIntent confirma com o método de
    qualquer forma e falha ali se ele for realmente inválido.
    """
    try:
        with _stripe_call("payment_method.attach"):
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
    except UpstreamProviderError as e:
        if not (tolerate_attached and isinstance(e.__cause__, stripe.InvalidRequestError)):
            raise
        logger.info(f"Payment method {payment_method_id} not attached to {customer_id}: {e.__cause__}")

    if set_default:
        with _stripe_call("customer.modify"):
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )


def create_subscription(customer_id: str, price_id: str, user_id: UUID, plan: str) -> RemoteSubscription:
    with _stripe_call("subscription.create"):
        sub = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            payment_settings={
                "payment_method_types": ["card"],
                "save_default_payment_method": "on_subscription",
            },
            metadata={"user_id": str(user_id), "plan": plan},
            expand=["latest_invoice.confirmation_secret"],
        )
    remote = _remote_subscription(sub)
    logger.info(f"Stripe subscription created: {remote.id} ({remote.status}) for user: {user_id}")
    return remote


def retrieve_subscription(stripe_subscription_id: str) -> RemoteSubscription:
    with _stripe_call("subscription.retrieve"):
        sub = stripe.Subscription.retrieve(stripe_subscription_id)
    return _remote_subscription(sub)


def cancel_at_period_end(stripe_subscription_id: str) -> RemoteSubscription:
    with _stripe_call("subscription.modify"):
        sub = stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=True)
    logger.info(f"Stripe subscription {stripe_subscription_id} scheduled to cancel at period end")
    return _remote_subscription(sub)


def resume(stripe_subscription_id: str) -> RemoteSubscription:
    with _stripe_call("subscription.modify"):
        sub = stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=False)
    logger.info(f"Stripe subscription {stripe_subscription_id} resumed")
    return _remote_subscription(sub)


def cancel_now(stripe_subscription_id: str) -> None:
    with _stripe_call("subscription.cancel"):
        stripe.Subscription.cancel(stripe_subscription_id)
    logger.info(f"Stripe subscription {stripe_subscription_id} canceled immediately")


def create_payment_intent(
    amount_cents: int,
    customer_id: str,
    payment_method_id: str,
    metadata: Dict[str, str],
) -> RemotePaymentIntent:
    with _stripe_call("payment_intent.create"):
        pi = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=settings.STRIPE_CURRENCY,
            customer=customer_id,
            payment_method=payment_method_id,
            confirm=True,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata=metadata,
        )
    logger.info(f"PaymentIntent created: {pi['id']} ({pi['status']}) metadata={metadata}")
    return RemotePaymentIntent(
        id=pi["id"],
        status=pi["status"],
        client_secret=field(pi, "client_secret"),
    )


def verify_webhook(payload: bytes, sig_header: str) -> None:
    """Valida a assinatura do webhook; falha -> ValidationError (400)."""
    try:
        stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.warning(f"Invalid webhook payload: {e}")
        raise ValidationError("Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise ValidationError("Invalid signature") from e
