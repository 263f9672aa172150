import asyncio
import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.api import auth
from app.cache import get_redis
from app.config import DEFAULT_ACCESS_SECRET, DEFAULT_REFRESH_SECRET, settings
from app.db_init import init_db, wait_for_redis
from app.services.errors import AuthError, NotAuthenticated, TooManyAttempts, ValidationFailed
from app.services.maintenance import token_purge_loop

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("app.startup")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    db_name = parsed.path.lstrip("/")
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not db_name:
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"
    return f"scheme={scheme}, host={host}, port={port}, database={db_name}"


def _validate_required_env_for_runtime() -> None:
    errors = []
    is_production = settings.APP_ENV.strip().lower() == "production"

    for name, value, default in (
        ("JWT_ACCESS_SECRET", settings.JWT_ACCESS_SECRET, DEFAULT_ACCESS_SECRET),
        ("JWT_REFRESH_SECRET", settings.JWT_REFRESH_SECRET, DEFAULT_REFRESH_SECRET),
    ):
        if not value.strip():
            errors.append(f"{name} is required.")
        elif is_production and value == default:
            errors.append(f"{name} uses insecure default value in production.")

    if settings.JWT_ACCESS_SECRET == settings.JWT_REFRESH_SECRET:
        errors.append("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ.")

    invalid_origins = [origin for origin in _get_cors_origins(settings.CORS_ORIGINS) if not _is_http_url(origin)]
    if invalid_origins:
        errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated.")
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
        wait_for_redis(
            get_redis(),
            retries=settings.DB_CONNECT_RETRIES,
            retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
        )
    except Exception as exc:
        logger.exception("Startup failed: %s", str(exc))
        raise

    purge_task = None
    if settings.TOKEN_PURGE_INTERVAL_SECONDS > 0:
        purge_task = asyncio.create_task(token_purge_loop(settings.TOKEN_PURGE_INTERVAL_SECONDS))
    logger.info("Application startup completed successfully.")
    try:
        yield
    finally:
        if purge_task is not None:
            purge_task.cancel()


app = FastAPI(
    title="Payout Portal Auth API",
    description=(
        "Authentication and session lifecycle for the artist/admin payout portal. "
        "Use **Authorize** with the access token from `POST /api/auth/login` for protected endpoints."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Registration, login, sessions, password reset and 2FA."},
    ],
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        **openapi_schema.get("components", {}).get("securitySchemes", {}),
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Access token from POST /api/auth/login",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    headers = {}
    if isinstance(exc, NotAuthenticated):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, TooManyAttempts) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers or None)


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    logger.exception("Database unavailable while handling %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error.get("loc", ())[1:]), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=ValidationFailed.status_code,
        content=jsonable_encoder({"detail": ValidationFailed.default_message, "errors": errors}),
    )


app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])


@app.get("/")
def root():
    return {"status": "ok", "service": "Payout Portal Auth API"}


@app.get("/health")
def health():
    return {"status": "ok"}
