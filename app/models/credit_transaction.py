from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
from app.database import Base


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(String(64), nullable=False, index=True)  # 'purchase', 'signup_bonus', 'action:deep', ...
    pack = Column(String(8), nullable=True)
    addon_key = Column(String(32), nullable=True)
    # payment_intent / charge do Stripe; único para tornar o webhook idempotente
    provider_reference = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
