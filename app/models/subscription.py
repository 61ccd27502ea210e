from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Uuid
from datetime import datetime
import enum
import uuid
from app.database import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    NONE = "none"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    # Uma assinatura por usuário
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True, index=True)
    plan = Column(String(16), nullable=True)  # basic | pro
    status = Column(String(16), default=SubscriptionStatus.NONE.value, nullable=False, index=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    monthly_deep_limit = Column(Integer, nullable=True)  # NULL = sem limite
    monthly_deep_used = Column(Integer, default=0, nullable=False)
    last_invoice_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
