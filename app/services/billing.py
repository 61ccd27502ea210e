"""
Checkout/Mutation API: mudanças de direito iniciadas pelo usuário que criam
objetos no Stripe.

Compras avulsas (créditos, add-ons) apenas criam o PaymentIntent. O crédito
ou add-on só é concedido pelo reconciler ao receber payment_intent.succeeded.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
from app.exceptions import Conflict, NotFound, ValidationError
from app.models.subscription import SubscriptionStatus
from app.models.user import User
from app.services import payment_provider
from app.services.catalog import (
    ADDON_CATALOG,
    CREDIT_PACKS,
    PLANS,
    plan_limit,
    price_id_for_plan,
)
from app.services.entitlement_store import EntitlementStore
from app.services.quota_gate import subscription_in_force

logger = logging.getLogger(__name__)

# Status que podem ser cancelados ou retomados pelo usuário
CANCELABLE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value)

# Status que bloqueiam um novo checkout (incomplete só enquanto não expira)
BLOCKING_STATUSES = CANCELABLE_STATUSES + (SubscriptionStatus.INCOMPLETE.value,)

# O Stripe expira assinaturas incomplete depois de 23 horas
INCOMPLETE_CHECKOUT_TTL = timedelta(hours=23)


class BillingService:
    def __init__(self, store: EntitlementStore):
        self.store = store

    def _ensure_customer(self, user: User) -> str:
        """Reaproveita o customer do Stripe do usuário ou cria um novo"""
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer_id = payment_provider.create_customer(user.email, user.display_name, user.id)
        self.store.set_customer_id(user.id, customer_id)
        return customer_id

    def create_subscription(self, user_id: UUID, plan: str, payment_method_id: str) -> dict:
        """
        Cria a assinatura no Stripe e grava o documento local provisório.

        O documento é reservado (incomplete) antes de chamar o Stripe, então
        um segundo checkout do mesmo usuário recebe 409 mesmo que o webhook
        de confirmação ainda não tenha chegado. Se o Stripe falhar, a reserva
        é desfeita.

        Raises:
            Conflict: já existe assinatura active/past_due ou checkout em andamento
            ValidationError: plano sem price configurado
        """
        if plan not in PLANS:
            raise ValidationError(f"Invalid plan. Available plans: {list(PLANS)}")

        user = self.store.require_user(user_id)

        price_id = price_id_for_plan(plan)
        if not price_id:
            logger.error(f"Stripe price not configured for plan {plan}")
            raise ValidationError(f"Plan {plan} is not available")

        previous_status = self.store.claim_checkout(
            user_id, plan, stale_before=datetime.utcnow() - INCOMPLETE_CHECKOUT_TTL
        )
        try:
            customer_id = self._ensure_customer(user)
            payment_provider.attach_payment_method(payment_method_id, customer_id, set_default=True)
            remote = payment_provider.create_subscription(customer_id, price_id, user_id, plan)
        except Exception:
            self.store.release_checkout(user_id, previous_status)
            raise

        # Status provisório: o reconciler corrige qualquer divergência depois
        status = remote.status if remote.status in BLOCKING_STATUSES else SubscriptionStatus.INCOMPLETE.value
        sub = self.store.upsert_subscription(
            user_id,
            stripe_customer_id=customer_id,
            stripe_subscription_id=remote.id,
            plan=plan,
            status=status,
            current_period_end=remote.current_period_end,
            cancel_at_period_end=False,
            monthly_deep_limit=plan_limit(plan),
            monthly_deep_used=0,
            last_invoice_id=None,
        )
        logger.info(f"Subscription created: user_id={user_id}, plan={plan}, status={status}, stripe_id={remote.id}")

        return {
            "subscription_id": remote.id,
            "status": sub.status,
            "plan": plan,
            "current_period_end": sub.current_period_end,
            "client_secret": remote.client_secret,
        }

    def _cancelable_subscription(self, user_id: UUID):
        sub = self.store.get_subscription(user_id)
        if sub is None or sub.status not in CANCELABLE_STATUSES or not sub.stripe_subscription_id:
            raise NotFound("No active subscription")
        return sub

    def cancel_subscription(self, user_id: UUID) -> dict:
        """
        Solicita cancelamento no fim do período. O status local só vira
        canceled quando chegar customer.subscription.deleted.
        """
        sub = self._cancelable_subscription(user_id)
        if sub.cancel_at_period_end:
            raise Conflict("Subscription is already scheduled to cancel")

        payment_provider.cancel_at_period_end(sub.stripe_subscription_id)
        sub = self.store.upsert_subscription(user_id, cancel_at_period_end=True)
        logger.info(f"Subscription {sub.stripe_subscription_id} scheduled to cancel: user_id={user_id}")

        return {
            "status": sub.status,
            "cancel_at_period_end": True,
            "current_period_end": sub.current_period_end,
        }

    def resume_subscription(self, user_id: UUID) -> dict:
        """Desfaz um cancelamento agendado para o fim do período."""
        sub = self._cancelable_subscription(user_id)
        if not sub.cancel_at_period_end:
            raise Conflict("Subscription is not scheduled to cancel")

        payment_provider.resume(sub.stripe_subscription_id)
        sub = self.store.upsert_subscription(user_id, cancel_at_period_end=False)
        logger.info(f"Subscription {sub.stripe_subscription_id} resumed: user_id={user_id}")

        return {
            "status": sub.status,
            "cancel_at_period_end": False,
            "current_period_end": sub.current_period_end,
        }

    def purchase_credits(self, user_id: UUID, pack: str, payment_method_id: str) -> dict:
        pack_config = CREDIT_PACKS.get(pack)
        if pack_config is None:
            raise ValidationError(f"Invalid pack. Available packs: {list(CREDIT_PACKS)}")

        user = self.store.require_user(user_id)
        customer_id = self._ensure_customer(user)
        payment_provider.attach_payment_method(payment_method_id, customer_id, tolerate_attached=True)

        intent = payment_provider.create_payment_intent(
            pack_config["amount_cents"],
            customer_id,
            payment_method_id,
            metadata={
                "type": "credits",
                "pack": pack,
                "credits": str(pack_config["credits"]),
                "user_id": str(user_id),
            },
        )
        logger.info(f"Credit pack purchase initiated: user_id={user_id}, pack={pack}, payment_intent={intent.id}")

        return {
            "payment_intent_id": intent.id,
            "status": intent.status,
            "client_secret": intent.client_secret,
            "pack": pack,
            "credits": pack_config["credits"],
        }

    def purchase_addon(self, user_id: UUID, addon_key: str, payment_method_id: str) -> dict:
        addon = ADDON_CATALOG.get(addon_key)
        if addon is None:
            raise ValidationError(f"Invalid add-on. Available add-ons: {list(ADDON_CATALOG)}")

        user = self.store.require_user(user_id)
        if self.store.get_active_addon(user_id, addon_key) is not None:
            raise Conflict("Add-on already active")

        customer_id = self._ensure_customer(user)
        payment_provider.attach_payment_method(payment_method_id, customer_id, tolerate_attached=True)

        intent = payment_provider.create_payment_intent(
            addon["amount_cents"],
            customer_id,
            payment_method_id,
            metadata={
                "type": "addon",
                "addon_key": addon_key,
                "user_id": str(user_id),
            },
        )
        logger.info(f"Add-on purchase initiated: user_id={user_id}, addon={addon_key}, payment_intent={intent.id}")

        return {
            "payment_intent_id": intent.id,
            "status": intent.status,
            "client_secret": intent.client_secret,
            "addon_key": addon_key,
        }

    def subscription_status(self, user_id: UUID, now: Optional[datetime] = None) -> dict:
        """Sem registro de assinatura o usuário está no free tier."""
        sub = self.store.get_subscription(user_id)
        if sub is None:
            return {
                "plan": "free",
                "status": SubscriptionStatus.NONE.value,
                "active": False,
                "current_period_end": None,
                "cancel_at_period_end": False,
                "monthly_deep_used": 0,
                "monthly_deep_limit": None,
            }

        return {
            "plan": sub.plan or "free",
            "status": sub.status,
            "active": subscription_in_force(sub, now),
            "current_period_end": sub.current_period_end,
            "cancel_at_period_end": bool(sub.cancel_at_period_end),
            "monthly_deep_used": sub.monthly_deep_used,
            "monthly_deep_limit": sub.monthly_deep_limit,
        }

    def cancel_for_erasure(self, user_id: UUID) -> None:
        """
        Cancela imediatamente a assinatura no Stripe antes de apagar a conta.
        Erro do provider propaga (502) e nada é alterado localmente.
        """
        sub = self.store.get_subscription(user_id)
        if sub is None or sub.status not in BLOCKING_STATUSES:
            return

        if sub.stripe_subscription_id:
            payment_provider.cancel_now(sub.stripe_subscription_id)
        self.store.upsert_subscription(
            user_id,
            status=SubscriptionStatus.CANCELED.value,
            cancel_at_period_end=False,
        )
