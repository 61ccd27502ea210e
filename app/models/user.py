from sqlalchemy import Column, String, DateTime, Boolean, Integer, CheckConstraint, Uuid
from datetime import datetime
import uuid
from app.database import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_non_negative"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=True)
    locale = Column(String(8), default="en", nullable=False)
    role = Column(String(16), default="user", nullable=False)  # user | admin
    email_results_opt_in = Column(Boolean, default=False, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Saldo de créditos avulsos (não expiram)
    credit_balance = Column(Integer, default=0, nullable=False)
    credits_earned = Column(Integer, default=0, nullable=False)
    credits_spent = Column(Integer, default=0, nullable=False)

    # Cota gratuita mensal (reinicia no dia 1, UTC)
    free_used_this_month = Column(Integer, default=0, nullable=False)
    free_month_start = Column(DateTime, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
