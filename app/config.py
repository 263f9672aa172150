import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_ACCESS_SECRET = "change-me-access-secret"
DEFAULT_REFRESH_SECRET = "change-me-refresh-secret"


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_float(name: str, default: float) -> float:
        return float(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @property
    def APP_ENV(self) -> str:
        return os.getenv("APP_ENV", "development")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def DB_CONNECT_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_TIMEOUT_SECONDS", 5)

    @property
    def REDIS_URL(self) -> str:
        return os.getenv("REDIS_URL", "redis://localhost:6379/0")

    @property
    def REDIS_SOCKET_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("REDIS_SOCKET_TIMEOUT_SECONDS", 5.0)

    @property
    def JWT_ACCESS_SECRET(self) -> str:
        return os.getenv("JWT_ACCESS_SECRET", DEFAULT_ACCESS_SECRET)

    @property
    def JWT_REFRESH_SECRET(self) -> str:
        return os.getenv("JWT_REFRESH_SECRET", DEFAULT_REFRESH_SECRET)

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_ACCESS_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_ACCESS_EXPIRE_MINUTES", 15)

    @property
    def JWT_REFRESH_EXPIRE_DAYS(self) -> int:
        return self._get_int("JWT_REFRESH_EXPIRE_DAYS", 7)

    @property
    def JWT_REFRESH_REMEMBER_ME_DAYS(self) -> int:
        return self._get_int("JWT_REFRESH_REMEMBER_ME_DAYS", 30)

    @property
    def SESSION_TTL_DAYS(self) -> int:
        return self._get_int("SESSION_TTL_DAYS", 7)

    @property
    def SESSION_REMEMBER_ME_TTL_DAYS(self) -> int:
        return self._get_int("SESSION_REMEMBER_ME_TTL_DAYS", 30)

    @property
    def MAX_SESSIONS(self) -> int:
        return self._get_int("MAX_SESSIONS", 5)

    @property
    def MAX_LOGIN_ATTEMPTS(self) -> int:
        return self._get_int("MAX_LOGIN_ATTEMPTS", 5)

    @property
    def LOCKOUT_DURATION_MINUTES(self) -> int:
        return self._get_int("LOCKOUT_DURATION_MINUTES", 15)

    @property
    def EMAIL_VERIFY_TOKEN_EXPIRE_MINUTES(self) -> int:
        return self._get_int("EMAIL_VERIFY_TOKEN_EXPIRE_MINUTES", 24 * 60)

    @property
    def PASSWORD_RESET_TOKEN_EXPIRE_MINUTES(self) -> int:
        return self._get_int("PASSWORD_RESET_TOKEN_EXPIRE_MINUTES", 60)

    @property
    def TWO_FACTOR_ISSUER(self) -> str:
        return os.getenv("TWO_FACTOR_ISSUER", "Payout Portal")

    @property
    def TWO_FACTOR_VALID_WINDOW(self) -> int:
        return self._get_int("TWO_FACTOR_VALID_WINDOW", 2)

    @property
    def TWO_FACTOR_MAX_ATTEMPTS(self) -> int:
        return self._get_int("TWO_FACTOR_MAX_ATTEMPTS", 5)

    @property
    def TWO_FACTOR_ATTEMPT_WINDOW_SECONDS(self) -> int:
        return self._get_int("TWO_FACTOR_ATTEMPT_WINDOW_SECONDS", 300)

    @property
    def RATE_LIMIT_ENABLED(self) -> bool:
        return self._get_bool("RATE_LIMIT_ENABLED", True)

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "Payout Portal")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("SMTP_TIMEOUT_SECONDS", 10.0)

    @property
    def FRONTEND_URL(self) -> str:
        return os.getenv("FRONTEND_URL", "http://localhost:3000")

    @property
    def EMAIL_VERIFY_PATH(self) -> str:
        return os.getenv("EMAIL_VERIFY_PATH", "/verify-email")

    @property
    def PASSWORD_RESET_PATH(self) -> str:
        return os.getenv("PASSWORD_RESET_PATH", "/reset-password")

    @property
    def LOGIN_NOTIFICATIONS_ENABLED(self) -> bool:
        return self._get_bool("LOGIN_NOTIFICATIONS_ENABLED", True)

    @property
    def TOKEN_PURGE_INTERVAL_SECONDS(self) -> int:
        return self._get_int("TOKEN_PURGE_INTERVAL_SECONDS", 3600)

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_ACCESS_SECRET == DEFAULT_ACCESS_SECRET or settings.JWT_REFRESH_SECRET == DEFAULT_REFRESH_SECRET:
    import warnings
    warnings.warn("JWT secrets are using default values. Change them in production!", UserWarning)
