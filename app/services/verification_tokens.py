import hashlib
import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.models import VerificationToken
from app.services.time_utils import db_datetime, utcnow

logger = logging.getLogger(__name__)

TOKEN_TYPE_EMAIL_VERIFICATION = "email_verification"
TOKEN_TYPE_PASSWORD_RESET = "password_reset"
TOKEN_TYPES = frozenset({TOKEN_TYPE_EMAIL_VERIFICATION, TOKEN_TYPE_PASSWORD_RESET})


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _new_token() -> str:
    return secrets.token_urlsafe(48)


def invalidate_user_tokens(db: Session, user_id: str, token_type: str) -> int:
    db_now = db_datetime(db, utcnow())
    updated = (
        db.query(VerificationToken)
        .filter(
            VerificationToken.user_id == user_id,
            VerificationToken.type == token_type,
            VerificationToken.used.is_(False),
        )
        .update(
            {
                VerificationToken.used: True,
                VerificationToken.used_at: db_now,
            },
            synchronize_session=False,
        )
    )
    db.flush()
    return updated


def issue_token(
    db: Session,
    user_id: str,
    token_type: str,
    ttl_minutes: int,
) -> tuple[str, VerificationToken]:
    """Invalidate older unused tokens of the type, then store a fresh one.

    Returns the raw bearer string (to be emailed) and the stored record, which
    only keeps a hash of it.
    """
    if token_type not in TOKEN_TYPES:
        raise ValueError(f"Unknown token type: {token_type}")

    invalidate_user_tokens(db, user_id, token_type)

    raw = _new_token()
    record = VerificationToken(
        user_id=user_id,
        type=token_type,
        token_hash=_hash_token(raw),
        expires_at=db_datetime(db, utcnow() + timedelta(minutes=ttl_minutes)),
        used=False,
    )
    db.add(record)
    db.flush()
    return raw, record


def resolve_token(db: Session, raw_token: str, expected_type: str) -> VerificationToken | None:
    if not raw_token:
        return None
    db_now = db_datetime(db, utcnow())
    return (
        db.query(VerificationToken)
        .filter(
            VerificationToken.token_hash == _hash_token(raw_token),
            VerificationToken.type == expected_type,
            VerificationToken.used.is_(False),
            VerificationToken.expires_at > db_now,
        )
        .first()
    )


def consume_token(db: Session, token_id: int) -> bool:
    """Mark a token used. A second call changes nothing and returns False."""
    db_now = db_datetime(db, utcnow())
    updated = (
        db.query(VerificationToken)
        .filter(
            VerificationToken.id == token_id,
            VerificationToken.used.is_(False),
        )
        .update(
            {
                VerificationToken.used: True,
                VerificationToken.used_at: db_now,
            },
            synchronize_session=False,
        )
    )
    db.flush()
    return updated == 1


def purge_expired_tokens(db: Session) -> int:
    db_now = db_datetime(db, utcnow())
    deleted = (
        db.query(VerificationToken)
        .filter(VerificationToken.expires_at < db_now)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Purged %s expired verification tokens", deleted)
    return deleted
