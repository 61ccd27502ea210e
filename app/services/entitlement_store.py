"""
Entitlement Store: visão persistida de assinatura, saldo de créditos e add-ons
por usuário. Toda mutação de direito passa por aqui.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.exceptions import Conflict, InsufficientBalance, NotFound
from app.models.addon_grant import AddonGrant
from app.models.credit_transaction import CreditTransaction
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import User

logger = logging.getLogger(__name__)


class DuplicateReference(Conflict):
    """Referência do provider já aplicada (redelivery de webhook)"""
    default_detail = "Provider reference already applied"


def current_month_start(now: Optional[datetime] = None) -> datetime:
    """Início do mês corrente (meia-noite UTC do dia 1)"""
    now = now or datetime.utcnow()
    return datetime(now.year, now.month, 1)


class EntitlementStore:
    def __init__(self, db: Session):
        self.db = db

    # ── Usuários ──────────────────────────────────────────────────────────

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(
            User.id == user_id,
            User.is_deleted.is_(False)
        ).first()

    def require_user(self, user_id: UUID) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def set_customer_id(self, user_id: UUID, customer_id: str) -> None:
        user = self.require_user(user_id)
        user.stripe_customer_id = customer_id
        self.db.commit()
        logger.info(f"Stripe customer {customer_id} linked to user {user_id}")

    # ── Assinaturas ───────────────────────────────────────────────────────

    def get_subscription(self, user_id: UUID) -> Optional[Subscription]:
        """Sem registro é um estado válido (free tier), não um erro."""
        return self.db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).first()

    def get_subscription_by_provider_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(
            Subscription.stripe_subscription_id == stripe_subscription_id
        ).first()

    def upsert_subscription(self, user_id: UUID, **fields) -> Subscription:
        """
        Mescla `fields` no único documento de assinatura do usuário.

        Campos ausentes na chamada não são tocados. Se duas requisições
        tentarem inserir ao mesmo tempo, a constraint UNIQUE(user_id) faz a
        perdedora repetir a operação como update.
        """
        for attempt in range(2):
            sub = self.get_subscription(user_id)
            if sub is None:
                sub = Subscription(user_id=user_id, **fields)
                self.db.add(sub)
            else:
                for field, value in fields.items():
                    setattr(sub, field, value)
                sub.updated_at = datetime.utcnow()

            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempt:
                    raise
                logger.info(f"Concurrent subscription insert for user {user_id}, retrying as update")
                continue

            self.db.refresh(sub)
            logger.info(f"Subscription upserted for user {user_id}: {sorted(fields)}")
            return sub

    def claim_checkout(self, user_id: UUID, plan: str, stale_before: datetime) -> Optional[str]:
        """
        Reserva o documento de assinatura do usuário para um novo checkout,
        marcando-o como incomplete antes de qualquer chamada ao Stripe.

        Só é possível reservar quando não há documento, quando ele está
        canceled ou quando é um incomplete abandonado (atualizado antes de
        `stale_before`). A reserva é um INSERT protegido por UNIQUE(user_id)
        ou um UPDATE condicional, então entre duas requisições simultâneas
        apenas uma vence.

        Returns:
            status anterior do documento (None se ele foi criado agora)

        Raises:
            Conflict: assinatura active/past_due ou checkout em andamento
        """
        now = datetime.utcnow()
        sub = self.get_subscription(user_id)

        if sub is None:
            self.db.add(Subscription(
                user_id=user_id,
                plan=plan,
                status=SubscriptionStatus.INCOMPLETE.value,
                cancel_at_period_end=False,
            ))
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info(f"Concurrent checkout for user {user_id} lost the subscription insert")
                raise Conflict("User already has an active subscription")
            logger.info(f"Checkout claimed for user {user_id} (new subscription record)")
            return None

        previous_status = sub.status
        result = self.db.execute(
            update(Subscription)
            .where(
                Subscription.id == sub.id,
                or_(
                    Subscription.status.in_([
                        SubscriptionStatus.CANCELED.value,
                        SubscriptionStatus.NONE.value,
                    ]),
                    and_(
                        Subscription.status == SubscriptionStatus.INCOMPLETE.value,
                        Subscription.updated_at < stale_before,
                    ),
                ),
            )
            .values(
                status=SubscriptionStatus.INCOMPLETE.value,
                cancel_at_period_end=False,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            logger.info(f"Checkout refused for user {user_id}: subscription is {previous_status}")
            raise Conflict("User already has an active subscription")

        self.db.expire(sub)
        logger.info(f"Checkout claimed for user {user_id} (previous status: {previous_status})")
        return previous_status

    def release_checkout(self, user_id: UUID, previous_status: Optional[str]) -> None:
        """
        Desfaz a reserva de `claim_checkout` quando o checkout falha antes de
        existir assinatura no Stripe.
        """
        self.db.rollback()
        sub = self.get_subscription(user_id)
        if sub is None or sub.status != SubscriptionStatus.INCOMPLETE.value:
            return

        if previous_status is None:
            self.db.delete(sub)
        else:
            sub.status = previous_status
            sub.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Checkout released for user {user_id}")

    def update_subscription_by_provider_id(
        self,
        stripe_subscription_id: str,
        **fields
    ) -> Optional[Subscription]:
        sub = self.get_subscription_by_provider_id(stripe_subscription_id)
        if sub is None:
            return None

        for field, value in fields.items():
            setattr(sub, field, value)
        sub.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(sub)
        logger.info(f"Subscription {stripe_subscription_id} updated: {sorted(fields)}")
        return sub

    def increment_deep_usage(self, subscription_id: UUID) -> bool:
        """
        Incrementa monthly_deep_used de forma atômica, somente se a assinatura
        continua ativa e abaixo do limite. Retorna False se a condição falhar.
        """
        result = self.db.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                or_(
                    Subscription.monthly_deep_limit.is_(None),
                    Subscription.monthly_deep_used < Subscription.monthly_deep_limit,
                ),
            )
            .values(
                monthly_deep_used=Subscription.monthly_deep_used + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    # ── Créditos ──────────────────────────────────────────────────────────

    def get_credits(self, user_id: UUID) -> int:
        user = self.require_user(user_id)
        self.db.refresh(user)
        return user.credit_balance or 0

    def adjust_credits(
        self,
        user_id: UUID,
        delta: int,
        reason: str,
        reference: Optional[str] = None,
        pack: Optional[str] = None,
        addon_key: Optional[str] = None,
    ) -> int:
        """
        Aplica `delta` ao saldo e registra no ledger, na mesma transação.

        Débitos que deixariam o saldo negativo são rejeitados com
        InsufficientBalance (nunca truncados). Uma `reference` já registrada
        levanta DuplicateReference sem alterar o saldo.

        Returns:
            Novo saldo
        """
        if delta == 0:
            raise ValueError("delta must be non-zero")
        self.require_user(user_id)

        try:
            # Ledger primeiro: a constraint UNIQUE da referência barra redelivery
            self.db.add(CreditTransaction(
                user_id=user_id,
                delta=delta,
                reason=reason,
                pack=pack,
                addon_key=addon_key,
                provider_reference=reference,
            ))
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateReference(f"Reference {reference} already applied")

        values = {"credit_balance": User.credit_balance + delta}
        if delta > 0:
            values["credits_earned"] = User.credits_earned + delta
        else:
            values["credits_spent"] = User.credits_spent - delta

        stmt = update(User).where(User.id == user_id, User.is_deleted.is_(False))
        if delta < 0:
            stmt = stmt.where(User.credit_balance >= -delta)

        result = self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InsufficientBalance(
                f"Insufficient credits: {-delta} required"
            )

        self.db.commit()
        balance = self.get_credits(user_id)
        logger.info(f"Credits adjusted: user_id={user_id}, delta={delta}, reason={reason}, balance={balance}")
        return balance

    def find_transaction(self, reference: str) -> Optional[CreditTransaction]:
        return self.db.query(CreditTransaction).filter(
            CreditTransaction.provider_reference == reference
        ).first()

    def list_transactions(self, user_id: UUID, limit: int = 50) -> List[CreditTransaction]:
        return self.db.query(CreditTransaction).filter(
            CreditTransaction.user_id == user_id
        ).order_by(CreditTransaction.created_at.desc()).limit(limit).all()

    # ── Cota gratuita mensal ──────────────────────────────────────────────

    def free_remaining(self, user: User, limit: int, now: Optional[datetime] = None) -> int:
        month_start = current_month_start(now)
        if user.free_month_start is None or user.free_month_start < month_start:
            return limit
        return max(0, limit - (user.free_used_this_month or 0))

    def claim_free_allotment(self, user_id: UUID, limit: int, now: Optional[datetime] = None) -> bool:
        """Consome um slot gratuito (com reset automático na virada do mês)."""
        month_start = current_month_start(now)

        self.db.execute(
            update(User)
            .where(
                User.id == user_id,
                or_(User.free_month_start.is_(None), User.free_month_start < month_start),
            )
            .values(free_month_start=month_start, free_used_this_month=0)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.free_used_this_month < limit)
            .values(free_used_this_month=User.free_used_this_month + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    # ── Add-ons ───────────────────────────────────────────────────────────

    def get_active_addon(
        self,
        user_id: UUID,
        addon_key: str,
        now: Optional[datetime] = None
    ) -> Optional[AddonGrant]:
        now = now or datetime.utcnow()
        return self.db.query(AddonGrant).filter(
            AddonGrant.user_id == user_id,
            AddonGrant.addon_key == addon_key,
            AddonGrant.active.is_(True),
            or_(AddonGrant.expires_at.is_(None), AddonGrant.expires_at > now),
        ).first()

    def list_active_addons(self, user_id: UUID, now: Optional[datetime] = None) -> List[AddonGrant]:
        now = now or datetime.utcnow()
        return self.db.query(AddonGrant).filter(
            AddonGrant.user_id == user_id,
            AddonGrant.active.is_(True),
            or_(AddonGrant.expires_at.is_(None), AddonGrant.expires_at > now),
        ).order_by(AddonGrant.purchased_at.desc()).all()

    def grant_addon(
        self,
        user_id: UUID,
        addon_key: str,
        reference: str,
        expires_at: Optional[datetime] = None,
    ) -> AddonGrant:
        """Ativa o add-on após pagamento confirmado. Idempotente por `reference`."""
        now = datetime.utcnow()
        try:
            self.db.add(CreditTransaction(
                user_id=user_id,
                delta=0,
                reason="addon_purchase",
                addon_key=addon_key,
                provider_reference=reference,
            ))
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateReference(f"Reference {reference} already applied")

        grant = self.db.query(AddonGrant).filter(
            AddonGrant.user_id == user_id,
            AddonGrant.addon_key == addon_key,
        ).first()
        if grant is None:
            grant = AddonGrant(user_id=user_id, addon_key=addon_key, purchased_at=now)
            self.db.add(grant)
        elif not grant.is_current(now):
            grant.purchased_at = now

        grant.active = True
        grant.stripe_payment_intent_id = reference
        grant.expires_at = expires_at
        self.db.commit()
        self.db.refresh(grant)
        logger.info(f"Add-on granted: user_id={user_id}, addon={addon_key}, reference={reference}")
        return grant

    def revoke_addon(self, user_id: UUID, addon_key: str, reference: str) -> None:
        try:
            self.db.add(CreditTransaction(
                user_id=user_id,
                delta=0,
                reason="addon_refund",
                addon_key=addon_key,
                provider_reference=reference,
            ))
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateReference(f"Reference {reference} already applied")

        self.db.execute(
            update(AddonGrant)
            .where(AddonGrant.user_id == user_id, AddonGrant.addon_key == addon_key)
            .values(active=False, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"Add-on revoked: user_id={user_id}, addon={addon_key}, reference={reference}")

    # ── Conta ─────────────────────────────────────────────────────────────

    def soft_delete_user(self, user_id: UUID) -> None:
        user = self.require_user(user_id)
        now = datetime.utcnow()
        user.is_deleted = True
        user.deleted_at = now
        # Anonimizar email (manter formato para evitar conflitos)
        user.email = f"deleted_{user.id}@{now.timestamp()}.deleted"
        self.db.commit()
        logger.info(f"Account soft deleted: {user_id}")
