"""
Cadastro e autenticação de usuários (credenciais locais + JWT de sessão).
"""
import logging
from typing import Optional
from uuid import UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.config import settings
from app.exceptions import AuthError, Conflict
from app.models.user import User
from app.services.entitlement_store import EntitlementStore
from app.utils.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def signup(
    db: Session,
    email: str,
    password: str,
    display_name: Optional[str] = None,
    locale: str = "en",
) -> User:
    """
    Cria o usuário e concede o bônus de cadastro (registrado no ledger).

    Raises:
        Conflict: email já cadastrado
    """
    email = _normalize_email(email)
    if db.query(User).filter(User.email == email).first():
        raise Conflict("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        display_name=display_name,
        locale=locale or "en",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")
    db.refresh(user)

    if settings.SIGNUP_CREDIT_GRANT > 0:
        EntitlementStore(db).adjust_credits(user.id, settings.SIGNUP_CREDIT_GRANT, reason="signup_bonus")
        db.refresh(user)

    logger.info(f"User signed up: {user.id} (signup credits: {settings.SIGNUP_CREDIT_GRANT})")
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """
    Valida email/senha. A comparação bcrypt roda mesmo para emails
    inexistentes, e a mensagem de erro é a mesma nos dois casos.
    """
    user = db.query(User).filter(
        User.email == _normalize_email(email),
        User.is_deleted.is_(False)
    ).first()

    if not verify_password(password, user.password_hash if user else None):
        logger.info("Failed login attempt")
        raise AuthError("Invalid email or password")

    logger.info(f"User logged in: {user.id}")
    return user


def change_password(db: Session, user_id: UUID, current_password: str, new_password: str) -> User:
    """
    Troca a senha depois de validar a atual.

    Raises:
        AuthError: senha atual incorreta
    """
    user = EntitlementStore(db).require_user(user_id)
    if not verify_password(current_password, user.password_hash):
        logger.info(f"Password change rejected for user {user_id}: wrong current password")
        raise AuthError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"Password changed for user {user_id}")
    return user
