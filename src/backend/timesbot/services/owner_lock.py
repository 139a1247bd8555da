from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

import redis
from redis import Redis

from timesbot.services.accounting import Owner

logger = logging.getLogger(__name__)


class OwnerLockTimeout(RuntimeError):
    """Raised when another request kept an owner's lock for too long."""

    def __init__(self, owner: Owner) -> None:
        self.owner = owner
        super().__init__(f"Timed out waiting for the task lock of {owner}")


class OwnerLockRegistry:
    """Serialize read-decide-write sequences per owner.

    Uses a Redis lock so several workers agree on a single writer; falls back to
    process-local locks when Redis is missing or unreachable.
    """

    def __init__(
        self,
        redis_client: Redis | None = None,
        timeout: float = 10.0,
        namespace: str = "times:lock",
    ) -> None:
        self.redis = redis_client
        self.timeout = max(timeout, 0.1)
        self.namespace = namespace.rstrip(":")

        self._guard = threading.Lock()
        self._local_locks: dict[Owner, threading.Lock] = {}

    def key_for(self, owner: Owner) -> str:
        return f"{self.namespace}:{owner.team_id}:{owner.user_id}"

    @contextmanager
    def hold(self, owner: Owner) -> Iterator[None]:
        if self.redis is not None:
            try:
                lock = self.redis.lock(
                    self.key_for(owner),
                    timeout=self.timeout * 3,
                    blocking_timeout=self.timeout,
                )
                acquired = lock.acquire()
            except redis.RedisError as exc:
                # Only this call falls back; the next one tries Redis again.
                logger.warning("Redis owner lock unavailable, using a local lock for this call: %s", exc)
            else:
                if not acquired:
                    raise OwnerLockTimeout(owner)
                try:
                    yield
                finally:
                    try:
                        lock.release()
                    except redis.RedisError as exc:
                        logger.debug("Unable to release owner lock %s: %s", self.key_for(owner), exc)
                return

        local_lock = self._local_lock(owner)
        if not local_lock.acquire(timeout=self.timeout):
            raise OwnerLockTimeout(owner)
        try:
            yield
        finally:
            local_lock.release()

    def _local_lock(self, owner: Owner) -> threading.Lock:
        with self._guard:
            lock = self._local_locks.get(owner)
            if lock is None:
                lock = threading.Lock()
                self._local_locks[owner] = lock
            return lock
