from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, JSON, Uuid
from datetime import datetime
import uuid
from app.database import Base


class Dream(Base):
    __tablename__ = "dreams"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    dream_text = Column(Text, nullable=False)
    interpretation_type = Column(String(16), nullable=False)  # basic | deep | premium
    language = Column(String(8), default="en", nullable=False)
    interpretation = Column(JSON, nullable=True)
    charged_from = Column(String(16), nullable=True)  # subscription | credits | free_allotment
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
