"""Redis-backed registry of login sessions.

Two key families are kept:

* ``session:<id>`` holds the JSON session payload and expires with the session.
* ``user_sessions:<user_id>`` is a sorted set of the user's session ids scored
  by creation time, so the oldest session is always first.

Concurrent logins for one user may briefly overshoot the session cap; the next
``enforce_max`` prunes members whose payload has expired and evicts the oldest
sessions until the user is back under the cap.
"""

import json
import logging
import secrets
import time

from redis import Redis

from app.cache import store_call
from app.services.time_utils import utcnow

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionRegistry:
    def __init__(
        self,
        client: Redis,
        *,
        session_ttl_seconds: int,
        remember_me_ttl_seconds: int,
    ) -> None:
        self.client = client
        self.session_ttl_seconds = session_ttl_seconds
        self.remember_me_ttl_seconds = remember_me_ttl_seconds

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"{USER_SESSIONS_PREFIX}{user_id}"

    def ttl_for(self, remember_me: bool) -> int:
        return self.remember_me_ttl_seconds if remember_me else self.session_ttl_seconds

    def put(self, session_id: str, payload: dict, ttl_seconds: int) -> None:
        with store_call("put"):
            self.client.set(self._session_key(session_id), json.dumps(payload), ex=max(1, ttl_seconds))

    def get(self, session_id: str) -> dict | None:
        with store_call("get"):
            raw = self.client.get(self._session_key(session_id))
        if raw is None:
            return None
        return json.loads(raw)

    def remove(self, session_id: str) -> None:
        with store_call("remove"):
            self.client.delete(self._session_key(session_id))

    def add_to_user(self, user_id: str, session_id: str) -> None:
        key = self._user_key(user_id)
        with store_call("add_to_user"):
            # Scores must strictly increase so that ties never reorder sessions.
            newest = self.client.zrange(key, -1, -1, withscores=True)
            score = time.time()
            if newest and newest[0][1] >= score:
                score = newest[0][1] + 0.001
            pipe = self.client.pipeline()
            pipe.zadd(key, {session_id: score}, nx=True)
            # Outlives every member: the longest session TTL.
            pipe.expire(key, self.remember_me_ttl_seconds)
            pipe.execute()

    def remove_from_user(self, user_id: str, session_id: str) -> None:
        with store_call("remove_from_user"):
            self.client.zrem(self._user_key(user_id), session_id)

    def list_for_user(self, user_id: str) -> list[str]:
        with store_call("list_for_user"):
            return list(self.client.zrange(self._user_key(user_id), 0, -1))

    def delete_session(self, user_id: str, session_id: str) -> None:
        """Remove payload and membership in one transaction."""
        with store_call("delete_session"):
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(self._session_key(session_id))
            pipe.zrem(self._user_key(user_id), session_id)
            pipe.execute()

    def terminate_all(self, user_id: str) -> int:
        user_key = self._user_key(user_id)
        with store_call("terminate_all"):
            session_ids = self.client.zrange(user_key, 0, -1)
            pipe = self.client.pipeline(transaction=True)
            for session_id in session_ids:
                pipe.delete(self._session_key(session_id))
            pipe.delete(user_key)
            pipe.execute()
        if session_ids:
            logger.info("Terminated %s sessions for user id=%s", len(session_ids), user_id)
        return len(session_ids)

    def prune_expired(self, user_id: str) -> list[str]:
        """Drop set members whose session payload no longer exists."""
        user_key = self._user_key(user_id)
        with store_call("prune_expired"):
            session_ids = self.client.zrange(user_key, 0, -1)
            if not session_ids:
                return []
            pipe = self.client.pipeline()
            for session_id in session_ids:
                pipe.exists(self._session_key(session_id))
            alive = pipe.execute()
            stale = [sid for sid, exists in zip(session_ids, alive) if not exists]
            if stale:
                self.client.zrem(user_key, *stale)
        return stale

    def enforce_max(self, user_id: str, max_sessions: int) -> list[str]:
        """Evict the oldest sessions so that one more session fits under the cap."""
        self.prune_expired(user_id)
        session_ids = self.list_for_user(user_id)
        if len(session_ids) < max_sessions:
            return []

        evicted = session_ids[: len(session_ids) - max_sessions + 1]
        user_key = self._user_key(user_id)
        with store_call("enforce_max"):
            pipe = self.client.pipeline(transaction=True)
            for session_id in evicted:
                pipe.delete(self._session_key(session_id))
                pipe.zrem(user_key, session_id)
            pipe.execute()
        logger.info("Evicted %s oldest sessions for user id=%s", len(evicted), user_id)
        return evicted

    def create_session(self, user_id: str, remember_me: bool, max_sessions: int) -> str:
        session_id = new_session_id()
        now = utcnow().isoformat()
        payload = {
            "user_id": user_id,
            "remember_me": remember_me,
            "created_at": now,
            "last_activity": now,
        }
        self.enforce_max(user_id, max_sessions)
        self.put(session_id, payload, self.ttl_for(remember_me))
        self.add_to_user(user_id, session_id)
        return session_id

    def touch(self, session_id: str) -> dict | None:
        """Bump last_activity and renew the TTL. Returns None for a dead session.

        The write only lands on an existing key, so a concurrent logout is
        never undone.
        """
        payload = self.get(session_id)
        if payload is None:
            return None
        payload["last_activity"] = utcnow().isoformat()
        ttl_seconds = self.ttl_for(bool(payload.get("remember_me")))
        with store_call("touch"):
            # XX: a session removed since the read must stay removed.
            written = self.client.set(
                self._session_key(session_id), json.dumps(payload), ex=max(1, ttl_seconds), xx=True
            )
            if not written:
                return None
            user_id = payload.get("user_id")
            if user_id:
                self.client.expire(self._user_key(user_id), self.remember_me_ttl_seconds)
        return payload
