"""Authentication and session lifecycle.

``AuthService`` drives register -> verify -> login (+ optional TOTP) ->
refresh -> logout. It owns the lockout and password-strength policies and
mints the signed access/refresh pair bound to a session id. Business-rule
failures are raised as ``AuthError`` subclasses and turned into responses by
the application's exception handlers.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.models import User
from app.services import credential_store
from app.services.email_service import send_password_reset_email, send_verify_email
from app.services.errors import (
    AccountDeactivated,
    AccountLocked,
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidPassword,
    InvalidRefreshToken,
    InvalidTwoFactorCode,
    NotAuthenticated,
    TooManyAttempts,
    UserNotFound,
)
from app.services.passwords import validate_password_strength
from app.services.rate_limiter import RateLimiter
from app.services.session_registry import SessionRegistry
from app.services.two_factor import TwoFactorSetup, generate_secret, verify_code
from app.services.verification_tokens import (
    TOKEN_TYPE_EMAIL_VERIFICATION,
    TOKEN_TYPE_PASSWORD_RESET,
    consume_token,
    issue_token,
    resolve_token,
)

logger = logging.getLogger(__name__)

TOKEN_KIND_ACCESS = "access"
TOKEN_KIND_REFRESH = "refresh"


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int
    refresh_expires_in: int


@dataclass(frozen=True)
class LoginResult:
    user: dict | None = None
    tokens: AuthTokens | None = None
    requires_two_factor: bool = False


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    session_id: str


def _secret_for(kind: str) -> str:
    if kind == TOKEN_KIND_REFRESH:
        return settings.JWT_REFRESH_SECRET
    return settings.JWT_ACCESS_SECRET


def create_token(user: User, session_id: str, kind: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "sid": session_id,
        "type": kind,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)


def decode_token(raw_token: str, kind: str) -> dict:
    """Verify signature, expiry and kind. Raises JWTError on any mismatch."""
    payload = jwt.decode(raw_token, _secret_for(kind), algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != kind:
        raise JWTError("Unexpected token type")
    if not payload.get("sub") or not payload.get("sid"):
        raise JWTError("Token is missing subject or session")
    return payload


class AuthService:
    def __init__(
        self,
        db: Session,
        sessions: SessionRegistry,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.db = db
        self.sessions = sessions
        self.rate_limiter = rate_limiter

    # Registration and email verification

    def register(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create an unverified user and email a 24h verification link."""
        if credential_store.find_by_email(self.db, email) is not None:
            raise DuplicateEmail()
        validate_password_strength(password)

        user = credential_store.create_user(self.db, email, password, first_name, last_name)
        verify_token, _ = issue_token(
            self.db,
            user_id=user.id,
            token_type=TOKEN_TYPE_EMAIL_VERIFICATION,
            ttl_minutes=settings.EMAIL_VERIFY_TOKEN_EXPIRE_MINUTES,
        )
        self.db.commit()
        self.db.refresh(user)

        try:
            send_verify_email(user.email, user.first_name, verify_token)
        except Exception:
            logger.exception("Failed to send verification email to user id=%s", user.id)

        logger.info("User registered: id=%s", user.id)
        return user

    def verify_email(self, raw_token: str) -> None:
        token = resolve_token(self.db, raw_token, TOKEN_TYPE_EMAIL_VERIFICATION)
        if token is None:
            raise InvalidOrExpiredToken("Invalid or expired verification token")

        credential_store.set_email_verified(self.db, token.user_id)
        if not consume_token(self.db, token.id):
            self.db.rollback()
            raise InvalidOrExpiredToken("Invalid or expired verification token")
        self.db.commit()
        logger.info("Email verified for user id=%s", token.user_id)

    # Login, refresh, logout

    def login(
        self,
        email: str,
        password: str,
        remember_me: bool = False,
        two_factor_code: str | None = None,
    ) -> LoginResult:
        user = credential_store.find_by_email(self.db, email)
        if user is None:
            raise InvalidCredentials()
        if credential_store.is_locked(user):
            raise AccountLocked()
        if not user.is_active:
            raise AccountDeactivated()

        if not credential_store.verify_password(user, password):
            credential_store.record_failed_attempt(self.db, user.id)
            self.db.commit()
            logger.info("Failed login for user id=%s", user.id)
            raise InvalidCredentials()

        if user.two_factor_enabled:
            if not two_factor_code:
                return LoginResult(requires_two_factor=True)
            # TOTP failures are throttled separately and never count toward lockout.
            self._check_two_factor_attempts(user.id)
            if not verify_code(user.two_factor_secret, two_factor_code, settings.TWO_FACTOR_VALID_WINDOW):
                logger.info("Invalid two-factor code for user id=%s", user.id)
                raise InvalidTwoFactorCode()
            self._clear_two_factor_attempts(user.id)

        credential_store.record_successful_login(self.db, user.id)
        session_id = self.sessions.create_session(user.id, remember_me, settings.MAX_SESSIONS)
        self.db.commit()

        tokens = self._issue_tokens(user, session_id, remember_me)
        logger.info("User logged in: id=%s session=%s", user.id, session_id)
        return LoginResult(user=credential_store.public_profile(self.db, user.id), tokens=tokens)

    def refresh_token(self, raw_refresh_token: str) -> AuthTokens:
        """Mint a new pair for the same session. Every failure looks the same."""
        try:
            payload = decode_token(raw_refresh_token, TOKEN_KIND_REFRESH)
            session_id = payload["sid"]
            session = self.sessions.get(session_id)
            if session is None or session.get("user_id") != payload["sub"]:
                raise InvalidRefreshToken()
            user = credential_store.find_by_id(self.db, payload["sub"])
            if user is None or not user.is_active:
                raise InvalidRefreshToken()
        except (JWTError, InvalidRefreshToken) as exc:
            logger.info("Refresh token rejected: %s", type(exc).__name__)
            raise InvalidRefreshToken() from exc

        if self.sessions.touch(session_id) is None:
            logger.info("Refresh token rejected: session ended during refresh")
            raise InvalidRefreshToken()
        remember_me = bool(session.get("remember_me"))
        return self._issue_tokens(user, session_id, remember_me)

    def logout(self, session_id: str, user_id: str) -> None:
        self.sessions.delete_session(user_id, session_id)
        logger.info("User logged out: id=%s session=%s", user_id, session_id)

    def logout_all(self, user_id: str) -> int:
        terminated = self.sessions.terminate_all(user_id)
        logger.info("User logged out from all devices: id=%s", user_id)
        return terminated

    def authenticate_access_token(self, raw_access_token: str) -> Principal:
        """Admit a request: valid access token, live session, active user."""
        try:
            payload = decode_token(raw_access_token, TOKEN_KIND_ACCESS)
        except JWTError as exc:
            raise NotAuthenticated("Invalid token") from exc

        session_id = payload["sid"]
        session = self.sessions.get(session_id)
        if session is None or session.get("user_id") != payload["sub"]:
            raise NotAuthenticated("Session expired")

        user = credential_store.find_by_id(self.db, payload["sub"])
        if user is None or not user.is_active:
            raise NotAuthenticated("User not found or inactive")

        if self.sessions.touch(session_id) is None:
            raise NotAuthenticated("Session expired")
        return Principal(user_id=user.id, email=user.email, session_id=session_id)

    # Password reset

    def request_password_reset(self, email: str) -> None:
        """Silent for unknown emails so the response never reveals an account."""
        user = credential_store.find_by_email(self.db, email)
        if user is None:
            return

        reset_token, _ = issue_token(
            self.db,
            user_id=user.id,
            token_type=TOKEN_TYPE_PASSWORD_RESET,
            ttl_minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
        )
        self.db.commit()

        try:
            send_password_reset_email(user.email, user.first_name, reset_token)
        except Exception:
            logger.exception("Failed to send password reset email to user id=%s", user.id)
        logger.info("Password reset requested for user id=%s", user.id)

    def reset_password(self, raw_token: str, new_password: str) -> None:
        """Set a new password and end every session of the user."""
        token = resolve_token(self.db, raw_token, TOKEN_TYPE_PASSWORD_RESET)
        if token is None:
            raise InvalidOrExpiredToken("Invalid or expired reset token")
        validate_password_strength(new_password)

        credential_store.set_password_hash(self.db, token.user_id, new_password)
        if not consume_token(self.db, token.id):
            self.db.rollback()
            raise InvalidOrExpiredToken("Invalid or expired reset token")
        self.sessions.terminate_all(token.user_id)
        self.db.commit()
        logger.info("Password reset for user id=%s", token.user_id)

    # Two-factor authentication

    def setup_two_factor(self, user_id: str) -> TwoFactorSetup:
        user = self._get_user(user_id)
        return generate_secret(user.email)

    def enable_two_factor(self, user_id: str, secret: str, code: str) -> None:
        """Persist the candidate secret once the caller proves they hold it."""
        self._get_user(user_id)
        self._check_two_factor_attempts(user_id)
        if not verify_code(secret, code, settings.TWO_FACTOR_VALID_WINDOW):
            raise InvalidTwoFactorCode(status_code=400)
        self._clear_two_factor_attempts(user_id)

        credential_store.set_two_factor(self.db, user_id, True, secret)
        self.db.commit()
        logger.info("Two-factor authentication enabled for user id=%s", user_id)

    def disable_two_factor(self, user_id: str, password: str) -> None:
        """Disabling asks for the password, not a TOTP code."""
        user = self._get_user(user_id)
        if not credential_store.verify_password(user, password):
            raise InvalidPassword()

        credential_store.set_two_factor(self.db, user_id, False, None)
        self.db.commit()
        logger.info("Two-factor authentication disabled for user id=%s", user_id)

    # Profile

    def get_profile(self, user_id: str) -> dict:
        profile = credential_store.public_profile(self.db, user_id)
        if profile is None:
            raise UserNotFound()
        return profile

    # Helpers

    def _get_user(self, user_id: str) -> User:
        user = credential_store.find_by_id(self.db, user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _issue_tokens(self, user: User, session_id: str, remember_me: bool) -> AuthTokens:
        refresh_days = settings.JWT_REFRESH_REMEMBER_ME_DAYS if remember_me else settings.JWT_REFRESH_EXPIRE_DAYS
        access_delta = timedelta(minutes=settings.JWT_ACCESS_EXPIRE_MINUTES)
        refresh_delta = timedelta(days=refresh_days)
        return AuthTokens(
            access_token=create_token(user, session_id, TOKEN_KIND_ACCESS, access_delta),
            refresh_token=create_token(user, session_id, TOKEN_KIND_REFRESH, refresh_delta),
            session_id=session_id,
            expires_in=int(access_delta.total_seconds()),
            refresh_expires_in=int(refresh_delta.total_seconds()),
        )

    def _check_two_factor_attempts(self, user_id: str) -> None:
        if self.rate_limiter is None:
            return
        result = self.rate_limiter.hit(
            "two_factor",
            user_id,
            settings.TWO_FACTOR_MAX_ATTEMPTS,
            settings.TWO_FACTOR_ATTEMPT_WINDOW_SECONDS,
        )
        if not result.allowed:
            raise TooManyAttempts(
                "Too many two-factor attempts, please try again later",
                retry_after=result.retry_after,
            )

    def _clear_two_factor_attempts(self, user_id: str) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.reset("two_factor", user_id)
