"""
Payment Event Reconciler: aplica eventos verificados do Stripe no Entitlement Store.

Cada handler é idempotente. O Stripe entrega eventos pelo menos uma vez e
fora de ordem, então renovações e mudanças de plano sempre relêem a
assinatura remota em vez de confiar no snapshot do payload.
"""
import logging
from uuid import UUID
from app.models.subscription import SubscriptionStatus
from app.services import payment_provider
from app.services.catalog import ADDON_CATALOG, CREDIT_PACKS, plan_from_price_id, plan_limit
from app.services.entitlement_store import DuplicateReference, EntitlementStore
from app.services.stripe_events import (
    ChargeRefunded,
    InvoicePaid,
    InvoicePaymentFailed,
    PaymentSucceeded,
    ProviderEvent,
    SubscriptionChanged,
    SubscriptionDeleted,
    map_remote_status,
)

logger = logging.getLogger(__name__)

IGNORED = "ignored"
ALREADY_APPLIED = "already_applied"


class PaymentEventReconciler:
    def __init__(self, store: EntitlementStore):
        self.store = store
        self._handlers = {
            InvoicePaid: self._on_invoice_paid,
            InvoicePaymentFailed: self._on_invoice_payment_failed,
            SubscriptionChanged: self._on_subscription_changed,
            SubscriptionDeleted: self._on_subscription_deleted,
            PaymentSucceeded: self._on_payment_succeeded,
            ChargeRefunded: self._on_charge_refunded,
        }

    def apply(self, event: ProviderEvent) -> str:
        """
        Aplica o evento e retorna um rótulo do resultado.

        Exceções (store indisponível, erro do provider ao reler a assinatura)
        propagam: o webhook responde não-2xx e o Stripe reenvia.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.info(f"Unhandled Stripe event type: {event.event_type} ({event.event_id})")
            return IGNORED

        outcome = handler(event)
        logger.info(f"Stripe event {event.event_type} ({event.event_id}) -> {outcome}")
        return outcome

    def _plan_fields(self, price_id):
        """Price desconhecido não altera plano nem limite."""
        plan = plan_from_price_id(price_id)
        if plan is None:
            if price_id:
                logger.warning(f"Unknown Stripe price id {price_id}, keeping current plan")
            return {}
        return {"plan": plan, "monthly_deep_limit": plan_limit(plan)}

    def _user_from_metadata(self, remote):
        """
        Usuário dono de uma assinatura remota sem documento local. Retorna
        None se o documento do usuário já pertence a outra assinatura ainda
        não cancelada (evento de uma assinatura antiga).
        """
        try:
            user_id = UUID(remote.user_id) if remote.user_id else None
        except ValueError:
            user_id = None
        if user_id is None or self.store.get_user(user_id) is None:
            return None

        current = self.store.get_subscription(user_id)
        if (
            current is not None
            and current.stripe_subscription_id not in (None, remote.id)
            and current.status != SubscriptionStatus.CANCELED.value
        ):
            logger.warning(
                f"Subscription {remote.id} belongs to user {user_id}, "
                f"who already has {current.stripe_subscription_id} ({current.status})"
            )
            return None
        return user_id

    def _on_invoice_paid(self, event: InvoicePaid) -> str:
        """
        Renovação. O status vem da assinatura remota relida, nunca do fato de
        a invoice estar paga, e uma assinatura local canceled não volta a
        ficar ativa por um evento de invoice atrasado ou reenviado.
        """
        if not event.subscription_id:
            return IGNORED

        remote = payment_provider.retrieve_subscription(event.subscription_id)
        local = self.store.get_subscription_by_provider_id(event.subscription_id)

        if local is not None and local.status == SubscriptionStatus.CANCELED.value:
            logger.info(f"Invoice {event.invoice_id} paid for canceled subscription {event.subscription_id}, ignoring")
            return IGNORED

        status = map_remote_status(remote.status)
        fields = {
            "current_period_end": remote.current_period_end,
            "cancel_at_period_end": remote.cancel_at_period_end,
        }
        if status is not None:
            fields["status"] = status
        else:
            logger.warning(f"Unknown Stripe subscription status {remote.status} for {remote.id}")
        if remote.customer_id:
            fields["stripe_customer_id"] = remote.customer_id
        fields.update(self._plan_fields(remote.price_id))

        renewed = status == SubscriptionStatus.ACTIVE.value
        replay = local is not None and local.last_invoice_id == event.invoice_id
        if renewed and not replay:
            # Reset do contador uma única vez por invoice paga
            fields["monthly_deep_used"] = 0
            fields["last_invoice_id"] = event.invoice_id

        if local is not None:
            self.store.update_subscription_by_provider_id(event.subscription_id, **fields)
        else:
            user_id = self._user_from_metadata(remote) if renewed else None
            if user_id is None:
                logger.warning(
                    f"Invoice {event.invoice_id} paid for unknown subscription "
                    f"{event.subscription_id} (remote status: {remote.status})"
                )
                return IGNORED
            self.store.upsert_subscription(
                user_id,
                stripe_subscription_id=event.subscription_id,
                **fields
            )

        if not renewed:
            return "synced"
        return "renewal_replayed" if replay else "renewed"

    def _on_invoice_payment_failed(self, event: InvoicePaymentFailed) -> str:
        if not event.subscription_id:
            return IGNORED

        local = self.store.get_subscription_by_provider_id(event.subscription_id)
        if local is None:
            logger.warning(f"Payment failed for unknown subscription {event.subscription_id}")
            return IGNORED
        if local.status == SubscriptionStatus.CANCELED.value:
            return IGNORED

        self.store.update_subscription_by_provider_id(
            event.subscription_id,
            status=SubscriptionStatus.PAST_DUE.value,
        )
        logger.info(
            f"Subscription {event.subscription_id} past_due "
            f"(invoice {event.invoice_id}, attempt {event.attempt_count})"
        )
        return "past_due"

    def _on_subscription_changed(self, event: SubscriptionChanged) -> str:
        remote = payment_provider.retrieve_subscription(event.subscription_id)

        fields = {
            "current_period_end": remote.current_period_end,
            "cancel_at_period_end": remote.cancel_at_period_end,
        }
        status = map_remote_status(remote.status)
        if status is not None:
            fields["status"] = status
        else:
            logger.warning(f"Unknown Stripe subscription status {remote.status} for {remote.id}")
        fields.update(self._plan_fields(remote.price_id))

        if self.store.get_subscription_by_provider_id(event.subscription_id) is not None:
            self.store.update_subscription_by_provider_id(event.subscription_id, **fields)
            return "synced"

        user_id = self._user_from_metadata(remote)
        if user_id is None:
            logger.warning(f"Subscription {event.subscription_id} has no local record and no user metadata")
            return IGNORED
        if remote.customer_id:
            fields["stripe_customer_id"] = remote.customer_id
        self.store.upsert_subscription(user_id, stripe_subscription_id=event.subscription_id, **fields)
        return "synced"

    def _on_subscription_deleted(self, event: SubscriptionDeleted) -> str:
        # Documento é mantido para histórico
        sub = self.store.update_subscription_by_provider_id(
            event.subscription_id,
            status=SubscriptionStatus.CANCELED.value,
            cancel_at_period_end=False,
        )
        if sub is None:
            logger.warning(f"Deletion for unknown subscription {event.subscription_id}")
            return IGNORED
        return "canceled"

    def _on_payment_succeeded(self, event: PaymentSucceeded) -> str:
        if not event.kind or not event.user_id:
            return IGNORED
        if self.store.get_user(event.user_id) is None:
            logger.warning(f"PaymentIntent {event.payment_intent_id} for unknown user {event.user_id}")
            return IGNORED

        if event.kind == "credits":
            pack = CREDIT_PACKS.get(event.pack)
            credits = pack["credits"] if pack else event.credits
            if not credits or credits <= 0:
                logger.warning(f"PaymentIntent {event.payment_intent_id} has no valid credit amount")
                return IGNORED
            try:
                self.store.adjust_credits(
                    event.user_id,
                    credits,
                    reason="purchase",
                    reference=event.payment_intent_id,
                    pack=event.pack,
                )
            except DuplicateReference:
                return ALREADY_APPLIED
            return "credits_granted"

        if event.kind == "addon":
            if event.addon_key not in ADDON_CATALOG:
                logger.warning(f"PaymentIntent {event.payment_intent_id} for unknown add-on {event.addon_key}")
                return IGNORED
            try:
                self.store.grant_addon(event.user_id, event.addon_key, reference=event.payment_intent_id)
            except DuplicateReference:
                return ALREADY_APPLIED
            return "addon_granted"

        return IGNORED

    def _on_charge_refunded(self, event: ChargeRefunded) -> str:
        if not event.payment_intent_id or not event.fully_refunded:
            return IGNORED

        original = self.store.find_transaction(event.payment_intent_id)
        if original is None:
            return IGNORED

        reference = f"refund:{event.charge_id}"
        if self.store.find_transaction(reference) is not None:
            return ALREADY_APPLIED

        try:
            if original.reason == "addon_purchase":
                self.store.revoke_addon(original.user_id, original.addon_key, reference=reference)
                return "addon_revoked"

            if original.delta <= 0:
                return IGNORED
            user = self.store.get_user(original.user_id)
            if user is None:
                return IGNORED

            # Nunca negativo: remove só o que ainda resta do pacote
            amount = min(original.delta, user.credit_balance or 0)
            if amount <= 0:
                logger.info(f"Refund {event.charge_id}: credits already spent, nothing to reverse")
                return "nothing_to_reverse"
            self.store.adjust_credits(
                original.user_id,
                -amount,
                reason="refund",
                reference=reference,
                pack=original.pack,
            )
        except DuplicateReference:
            return ALREADY_APPLIED
        return "credits_reversed"
