import logging
from contextlib import contextmanager
from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from app.config import settings
from app.services.errors import DependencyTimeout, DependencyUnavailable

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    return Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


def verify_redis_connection(client: Redis) -> None:
    client.ping()


@contextmanager
def store_call(operation: str):
    """Translate Redis failures into dependency errors for the request layer."""
    try:
        yield
    except RedisTimeoutError as exc:
        logger.exception("Redis timed out during %s", operation)
        raise DependencyTimeout() from exc
    except RedisError as exc:
        logger.exception("Redis failed during %s", operation)
        raise DependencyUnavailable() from exc
