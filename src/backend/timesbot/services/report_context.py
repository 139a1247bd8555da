"""Short-lived tokens that let a browser open an owner's report page.

A report link carries only a random token; the token resolves to the owner
that asked for it until the context expires.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable

import redis
from redis import Redis

from timesbot.services.accounting import Owner

logger = logging.getLogger(__name__)

REPORT_ACTION = "report"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class ReportContext:
    id: str
    action_name: str
    owner: Owner
    created_at: dt.datetime
    expires_at: dt.datetime

    def is_expired(self, now: dt.datetime) -> bool:
        return now >= self.expires_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "id": self.id,
                "action_name": self.action_name,
                "team_id": self.owner.team_id,
                "user_id": self.owner.user_id,
                "created_at": self.created_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ReportContext":
        data = json.loads(raw)
        return cls(
            id=data["id"],
            action_name=data["action_name"],
            owner=Owner(team_id=data["team_id"], user_id=data["user_id"]),
            created_at=dt.datetime.fromisoformat(data["created_at"]),
            expires_at=dt.datetime.fromisoformat(data["expires_at"]),
        )


class ReportContextStore:
    """Token to context cache with a fixed time to live.

    Entries live in Redis (``SET ... EX``) when it is reachable; a call that hits
    a Redis error uses a local dict instead. Local entries are checked for expiry
    on lookup, and every local insert sweeps expired ones first.
    """

    def __init__(
        self,
        redis_client: Redis | None = None,
        ttl: dt.timedelta = dt.timedelta(hours=6),
        namespace: str = "times:report",
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.redis = redis_client
        self.ttl = ttl
        self.namespace = namespace.rstrip(":")
        self.clock = clock

        self._lock = threading.Lock()
        self._local: dict[str, ReportContext] = {}

    def key_for(self, token: str) -> str:
        return f"{self.namespace}:{token}"

    def create_context(self, owner: Owner, action_name: str = REPORT_ACTION) -> ReportContext:
        now = self.clock()
        context = ReportContext(
            id=str(uuid.uuid4()),
            action_name=action_name,
            owner=owner,
            created_at=now,
            expires_at=now + self.ttl,
        )

        if self.redis is not None:
            try:
                self.redis.set(self.key_for(context.id), context.to_json(), ex=max(int(self.ttl.total_seconds()), 1))
                return context
            except redis.RedisError as exc:
                logger.warning("Redis report contexts unavailable, caching this one locally: %s", exc)

        self.purge_expired()
        with self._lock:
            self._local[context.id] = context
        return context

    def get_context(self, token: str) -> ReportContext | None:
        if not token:
            return None

        if self.redis is not None:
            try:
                raw = self.redis.get(self.key_for(token))
            except redis.RedisError as exc:
                logger.warning("Redis report contexts unavailable, checking the local cache only: %s", exc)
            else:
                if raw is None:
                    return self._get_local(token)
                context = ReportContext.from_json(raw)
                return None if context.is_expired(self.clock()) else context

        return self._get_local(token)

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [token for token, context in self._local.items() if context.is_expired(now)]
            for token in expired:
                del self._local[token]
        if expired:
            logger.debug("Purged %d expired report contexts", len(expired))
        return len(expired)

    def _get_local(self, token: str) -> ReportContext | None:
        now = self.clock()
        with self._lock:
            context = self._local.get(token)
            if context is None:
                return None
            if context.is_expired(now):
                del self._local[token]
                return None
            return context
