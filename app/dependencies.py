from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis import Redis
from sqlalchemy.orm import Session

from app.cache import get_redis
from app.config import settings
from app.models import get_db
from app.services import credential_store
from app.services.auth_service import AuthService, Principal
from app.services.errors import EmailNotVerified, NotAuthenticated, TooManyAttempts
from app.services.rate_limiter import RateLimiter
from app.services.session_registry import SessionRegistry

security = HTTPBearer(auto_error=False)

SECONDS_PER_DAY = 24 * 60 * 60


def get_client_ip(request: Request) -> str:
    if not request.client:
        return "unknown"
    return request.client.host


def get_user_agent(request: Request) -> str:
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        return "Unknown"
    return user_agent[:512]


def get_session_registry(redis: Annotated[Redis, Depends(get_redis)]) -> SessionRegistry:
    return SessionRegistry(
        redis,
        session_ttl_seconds=settings.SESSION_TTL_DAYS * SECONDS_PER_DAY,
        remember_me_ttl_seconds=settings.SESSION_REMEMBER_ME_TTL_DAYS * SECONDS_PER_DAY,
    )


def get_rate_limiter(redis: Annotated[Redis, Depends(get_redis)]) -> RateLimiter:
    return RateLimiter(redis, enabled=settings.RATE_LIMIT_ENABLED)


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    sessions: Annotated[SessionRegistry, Depends(get_session_registry)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> AuthService:
    return AuthService(db, sessions, rate_limiter)


def rate_limit(scope: str, limit: int, window_seconds: int):
    """Per-client-IP throttle for a public endpoint."""

    def dependency(
        request: Request,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        result = limiter.hit(scope, get_client_ip(request), limit, window_seconds)
        if not result.allowed:
            raise TooManyAttempts(retry_after=result.retry_after)

    return dependency


def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> Principal:
    if not credentials:
        raise NotAuthenticated("Access token required")
    return auth_service.authenticate_access_token(credentials.credentials)


def require_verified_email(
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
) -> Principal:
    user = credential_store.find_by_id(db, principal.user_id)
    if user is None or not user.is_verified:
        raise EmailNotVerified()
    return principal
