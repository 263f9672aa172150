"""Persistence of user identity and credential state."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import User
from app.services.errors import DuplicateEmail, UserNotFound
from app.services.passwords import hash_password, verify_password_hash
from app.services.time_utils import as_utc, db_datetime, utcnow

logger = logging.getLogger(__name__)

PUBLIC_PROFILE_FIELDS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "is_verified",
    "is_active",
    "two_factor_enabled",
    "last_login",
    "created_at",
    "updated_at",
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def find_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def _get_user_or_raise(db: Session, user_id: str) -> User:
    user = find_by_id(db, user_id)
    if user is None:
        raise UserNotFound()
    return user


def create_user(
    db: Session,
    email: str,
    raw_password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    if find_by_email(db, email) is not None:
        raise DuplicateEmail()

    user = User(
        email=normalize_email(email),
        password_hash=hash_password(raw_password),
        first_name=first_name,
        last_name=last_name,
        is_verified=False,
        is_active=True,
        two_factor_enabled=False,
        two_factor_secret=None,
        failed_login_attempts=0,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same email.
        db.rollback()
        raise DuplicateEmail() from exc
    return user


def verify_password(user: User, raw_password: str) -> bool:
    return verify_password_hash(raw_password, user.password_hash)


def is_locked(user: User, now: datetime | None = None) -> bool:
    if user.locked_until is None:
        return False
    return (now or utcnow()) < as_utc(user.locked_until)


def record_failed_attempt(db: Session, user_id: str) -> int:
    """Atomically bump the failure counter and lock the account at the threshold.

    Returns the new counter value, or 0 when the user does not exist.
    """
    updated = (
        db.query(User)
        .filter(User.id == user_id)
        .update(
            {User.failed_login_attempts: User.failed_login_attempts + 1},
            synchronize_session=False,
        )
    )
    if updated != 1:
        return 0

    attempts = db.query(User.failed_login_attempts).filter(User.id == user_id).scalar() or 0
    if attempts >= settings.MAX_LOGIN_ATTEMPTS:
        locked_until = utcnow() + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
        db.query(User).filter(User.id == user_id).update(
            {User.locked_until: db_datetime(db, locked_until)},
            synchronize_session=False,
        )
        logger.warning("Account locked after %s failed attempts: user id=%s", attempts, user_id)
    db.flush()
    db.expire_all()
    return attempts


def record_successful_login(db: Session, user_id: str) -> None:
    user = _get_user_or_raise(db, user_id)
    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login = utcnow()
    db.flush()


def set_password_hash(db: Session, user_id: str, new_raw_password: str) -> None:
    user = _get_user_or_raise(db, user_id)
    user.password_hash = hash_password(new_raw_password)
    db.flush()


def set_email_verified(db: Session, user_id: str) -> None:
    user = _get_user_or_raise(db, user_id)
    user.is_verified = True
    db.flush()


def set_two_factor(db: Session, user_id: str, enabled: bool, secret: str | None) -> None:
    if enabled and not secret:
        raise ValueError("A secret is required to enable two-factor authentication")
    user = _get_user_or_raise(db, user_id)
    user.two_factor_enabled = enabled
    user.two_factor_secret = secret if enabled else None
    db.flush()


def deactivate(db: Session, user_id: str) -> None:
    user = _get_user_or_raise(db, user_id)
    user.is_active = False
    db.flush()


def public_profile(db: Session, user_id: str) -> dict | None:
    user = find_by_id(db, user_id)
    if user is None:
        return None
    return {field: getattr(user, field) for field in PUBLIC_PROFILE_FIELDS}
