"""
Catálogo estático: planos, pacotes de créditos, add-ons e custo das ações.
Somente os price IDs do Stripe vêm do ambiente.
"""
from typing import Optional
from app.config import settings

# Planos de assinatura (monthly_deep_limit None = ilimitado)
PLANS = {
    "basic": {
        "name": "Basic",
        "monthly_deep_limit": None,
        "amount_cents": 499,
    },
    "pro": {
        "name": "Pro",
        "monthly_deep_limit": 100,
        "amount_cents": 1299,
    },
}

CREDIT_PACKS = {
    "10": {"credits": 10, "amount_cents": 999, "label": "10 Credits - $9.99"},
    "25": {"credits": 25, "amount_cents": 1999, "label": "25 Credits - $19.99"},
    "60": {"credits": 60, "amount_cents": 3999, "label": "60 Credits - $39.99"},
}

ADDON_CATALOG = {
    "life_season": {"label": "Life Season", "amount_cents": 499},
    "recurring": {"label": "Recurring Dreams", "amount_cents": 299},
    "couples": {"label": "Couples", "amount_cents": 699},
    "therapist_pdf": {"label": "Therapist Export", "amount_cents": 999},
    "ad_removal": {"label": "Ad Removal", "amount_cents": 299},
}

# Custo em créditos por classe de ação (estritamente crescente)
ACTION_COSTS = {
    "basic": 1,
    "deep": 3,
    "premium": 5,
}
DEFAULT_ACTION = "basic"

# Ações que contam contra o limite mensal "deep" da assinatura
METERED_ACTIONS = {"deep", "premium"}

# Ações que podem usar a cota gratuita mensal
FREE_ALLOTMENT_ACTIONS = {"basic", "deep"}


def normalize_action(action_type: Optional[str]) -> str:
    """Classe desconhecida cai no tier mais barato em vez de falhar."""
    if action_type in ACTION_COSTS:
        return action_type
    return DEFAULT_ACTION


def action_cost(action_type: Optional[str]) -> int:
    return ACTION_COSTS[normalize_action(action_type)]


def price_id_for_plan(plan: str) -> Optional[str]:
    if plan == "basic":
        return settings.STRIPE_PRICE_BASIC or None
    if plan == "pro":
        return settings.STRIPE_PRICE_PRO or None
    return None


def plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """Mapeia price ID -> plano. Price desconhecido retorna None."""
    if not price_id:
        return None
    for plan in PLANS:
        if price_id_for_plan(plan) == price_id:
            return plan
    return None


def plan_limit(plan: str) -> Optional[int]:
    return PLANS[plan]["monthly_deep_limit"]
