"""Out-of-band housekeeping run from the application lifespan."""

import asyncio
import logging

from starlette.concurrency import run_in_threadpool

from app.models.database import SessionLocal
from app.services.verification_tokens import purge_expired_tokens

logger = logging.getLogger(__name__)


def run_token_purge(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        return purge_expired_tokens(db)
    finally:
        db.close()


async def token_purge_loop(interval_seconds: int, session_factory=SessionLocal) -> None:
    """Purge expired verification tokens every ``interval_seconds`` until cancelled."""
    while True:
        try:
            await run_in_threadpool(run_token_purge, session_factory)
        except Exception:
            logger.exception("Expired token purge failed")
        await asyncio.sleep(interval_seconds)
