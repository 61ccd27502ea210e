"""
Configuração comum dos testes.

As variáveis de ambiente precisam existir antes de `app.config` ser importado.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///./test_dreamlog.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["STRIPE_PRICE_BASIC"] = "price_basic_test"
os.environ["STRIPE_PRICE_PRO"] = "price_pro_test"
os.environ["LLM_API_KEY"] = "test-llm-key"
os.environ["FREE_MONTHLY_DEEP_QUOTA"] = "3"
os.environ["SIGNUP_CREDIT_GRANT"] = "5"

from datetime import datetime, timedelta
import pytest
from fastapi.testclient import TestClient
from app.main import app
from app.database import SessionLocal, Base, engine
from app.models.user import User
from app.models.subscription import Subscription
from app.utils.jwt_utils import create_access_token


@pytest.fixture(scope="function")
def db_session():
    """Cria uma sessão de banco de dados para testes"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    return TestClient(app)


def make_user(db, email="dreamer@example.com", credits=0, role="user", **fields):
    user = User(
        email=email,
        password_hash="not-a-real-hash",
        credit_balance=credits,
        credits_earned=credits,
        role=role,
        **fields
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_subscription(db, user, plan="pro", status="active", used=0, limit=100, **fields):
    fields.setdefault("current_period_end", datetime.utcnow() + timedelta(days=20))
    fields.setdefault("stripe_subscription_id", f"sub_{user.id.hex[:12]}")
    sub = Subscription(
        user_id=user.id,
        stripe_customer_id="cus_test",
        plan=plan,
        status=status,
        monthly_deep_used=used,
        monthly_deep_limit=limit,
        **fields
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sub


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def test_user(db_session):
    """Usuário sem assinatura e sem créditos"""
    return make_user(db_session)
