from app.database import Base
from app.models.user import User
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.addon_grant import AddonGrant
from app.models.credit_transaction import CreditTransaction
from app.models.dream import Dream

__all__ = [
    "Base",
    "User",
    "Subscription",
    "SubscriptionStatus",
    "AddonGrant",
    "CreditTransaction",
    "Dream",
]
