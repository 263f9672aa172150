import logging
import time
from pathlib import Path
from typing import Callable

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.cache import verify_redis_connection
from app.config import settings
from app.models.database import Base, _normalize_database_url, engine
from app.models import User, VerificationToken  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def _retry_until_reachable(
    name: str,
    check: Callable[[], None],
    errors: tuple[type[Exception], ...],
    retries: int,
    retry_delay_seconds: int,
    hint: str,
) -> None:
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            check()
            logger.info("%s connection established on attempt %s", name, attempt)
            return
        except errors as exc:
            last_error = exc
            logger.warning("%s not reachable yet (attempt %s/%s): %s", name, attempt, retries, exc)
            if attempt < retries:
                time.sleep(retry_delay_seconds)

    raise RuntimeError(f"{name} is unreachable after {retries} attempts. {hint}") from last_error


def _ping_database() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def wait_for_db(retries: int, retry_delay_seconds: int) -> None:
    """Wait for database to accept connections before running migrations."""
    _retry_until_reachable(
        "Database",
        _ping_database,
        (OperationalError,),
        retries,
        retry_delay_seconds,
        "Check DATABASE_URL and ensure the DB server is running.",
    )


def wait_for_redis(client: Redis, retries: int, retry_delay_seconds: int) -> None:
    _retry_until_reachable(
        "Redis",
        lambda: verify_redis_connection(client),
        (RedisError,),
        retries,
        retry_delay_seconds,
        "Check REDIS_URL and ensure the Redis server is running.",
    )


def init_db():
    wait_for_db(
        retries=settings.DB_CONNECT_RETRIES,
        retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    )
    if settings.DATABASE_URL.startswith("sqlite://"):
        Base.metadata.create_all(bind=engine)
        return

    run_migrations()


def run_migrations() -> None:
    """Apply Alembic migrations to the latest revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not alembic_ini.exists() or not script_location.exists():
        raise RuntimeError("Alembic configuration is missing (alembic.ini or alembic/ directory not found).")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(script_location))
    config.set_main_option("sqlalchemy.url", _normalize_database_url(settings.DATABASE_URL))
    command.upgrade(config, "head")
