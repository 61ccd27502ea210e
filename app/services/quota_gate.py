"""
Quota/Credit Gate: decisão síncrona de permitir/negar uma ação cobrável e o
consumo correspondente após a ação ter sucesso.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from app.config import settings
from app.exceptions import InsufficientBalance, QuotaExceeded
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.catalog import (
    ACTION_COSTS,
    FREE_ALLOTMENT_ACTIONS,
    METERED_ACTIONS,
    action_cost,
    normalize_action,
)
from app.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)

SOURCE_SUBSCRIPTION = "subscription"
SOURCE_CREDITS = "credits"
SOURCE_FREE_ALLOTMENT = "free_allotment"


class GateDecision(BaseModel):
    """Permissão concedida por check(); consumida por consume() após a ação"""
    user_id: UUID
    action_type: str
    source: str  # subscription | credits | free_allotment
    cost: int = 0
    metered: bool = False
    subscription_id: Optional[UUID] = None


def subscription_in_force(sub: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    """Ativa e dentro do período pago. past_due/canceled/incomplete não contam."""
    if sub is None or sub.status != SubscriptionStatus.ACTIVE.value:
        return False
    now = now or datetime.utcnow()
    return sub.current_period_end is None or sub.current_period_end > now


class QuotaGate:
    def __init__(self, store: EntitlementStore, free_monthly_quota: Optional[int] = None):
        self.store = store
        self.free_monthly_quota = (
            settings.FREE_MONTHLY_DEEP_QUOTA if free_monthly_quota is None else free_monthly_quota
        )

    def is_entitled(self, user_id: UUID, now: Optional[datetime] = None) -> bool:
        return subscription_in_force(self.store.get_subscription(user_id), now)

    def check(self, user_id: UUID, action_type: Optional[str], now: Optional[datetime] = None) -> GateDecision:
        """
        Decide se a ação pode executar. Não altera nenhum contador.

        Raises:
            QuotaExceeded: assinante no limite mensal, ou sem créditos nem cota gratuita
        """
        now = now or datetime.utcnow()
        action = normalize_action(action_type)
        user = self.store.require_user(user_id)
        sub = self.store.get_subscription(user_id)

        if subscription_in_force(sub, now):
            metered = action in METERED_ACTIONS and sub.monthly_deep_limit is not None
            if metered and sub.monthly_deep_used >= sub.monthly_deep_limit:
                logger.info(
                    f"Monthly deep limit reached: user_id={user_id}, "
                    f"used={sub.monthly_deep_used}, limit={sub.monthly_deep_limit}"
                )
                raise QuotaExceeded(
                    f"Monthly limit of {sub.monthly_deep_limit} deep interpretations reached for the {sub.plan} plan"
                )
            return GateDecision(
                user_id=user_id,
                action_type=action,
                source=SOURCE_SUBSCRIPTION,
                metered=metered,
                subscription_id=sub.id,
            )

        cost = action_cost(action)
        if (user.credit_balance or 0) >= cost:
            return GateDecision(user_id=user_id, action_type=action, source=SOURCE_CREDITS, cost=cost)

        if action in FREE_ALLOTMENT_ACTIONS and self.store.free_remaining(user, self.free_monthly_quota, now) > 0:
            return GateDecision(user_id=user_id, action_type=action, source=SOURCE_FREE_ALLOTMENT)

        logger.info(f"Action denied: user_id={user_id}, action={action}, balance={user.credit_balance}, cost={cost}")
        raise QuotaExceeded(
            f"Not enough credits for a {action} interpretation ({cost} required)"
        )

    def consume(self, decision: GateDecision, now: Optional[datetime] = None) -> bool:
        """
        Aplica o consumo de uma decisão depois que a ação teve sucesso.

        Se o estado mudou entre check() e consume() (requisição concorrente),
        a ação já foi entregue: registra o ocorrido e não cobra.

        Returns:
            True se o consumo foi aplicado
        """
        if decision.source == SOURCE_SUBSCRIPTION:
            if not decision.metered:
                return True
            applied = self.store.increment_deep_usage(decision.subscription_id)
        elif decision.source == SOURCE_CREDITS:
            try:
                self.store.adjust_credits(
                    decision.user_id,
                    -decision.cost,
                    reason=f"action:{decision.action_type}",
                )
                applied = True
            except InsufficientBalance:
                applied = False
        else:
            applied = self.store.claim_free_allotment(decision.user_id, self.free_monthly_quota, now)

        if not applied:
            logger.warning(
                f"Consumption lost a race: user_id={decision.user_id}, "
                f"source={decision.source}, action={decision.action_type}"
            )
        return applied

    def usage_summary(self, user_id: UUID, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        user = self.store.require_user(user_id)
        sub = self.store.get_subscription(user_id)
        active = subscription_in_force(sub, now)

        return {
            "subscription_active": active,
            "plan": sub.plan if sub else None,
            "status": sub.status if sub else SubscriptionStatus.NONE.value,
            "monthly_deep_used": sub.monthly_deep_used if sub else 0,
            "monthly_deep_limit": sub.monthly_deep_limit if sub else None,
            "current_period_end": sub.current_period_end if sub else None,
            "free_remaining": self.store.free_remaining(user, self.free_monthly_quota, now),
            "free_monthly_quota": self.free_monthly_quota,
            "credit_balance": user.credit_balance or 0,
            "action_costs": dict(ACTION_COSTS),
        }
