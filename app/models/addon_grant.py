from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from datetime import datetime
import uuid
from app.database import Base


class AddonGrant(Base):
    __tablename__ = "addon_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "addon_key", name="uq_addon_grants_user_addon"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    addon_key = Column(String(32), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    purchased_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # NULL = não expira
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def is_current(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.active) and (self.expires_at is None or self.expires_at > now)
