from __future__ import annotations

import logging
from contextlib import contextmanager

import redis
from redis.exceptions import LockNotOwnedError

from word_oracle.errors import SessionBusyError


logger = logging.getLogger(__name__)

SESSION_LOCK_KEY = "oracle:lock:session"


@contextmanager
def session_lock(*, r: redis.Redis, ttl_ms: int = 5_000, wait_ms: int = 2_000, retry_ms: int = 10):
    """Exclusive lock around Session Store read-modify-write sequences.

    Holders must not await anything while inside the block: the lock protects
    redis state shared by every request handler and the rotation loop, and
    ledger/LLM calls can take seconds. Since nothing awaits while holding it, a
    waiter only ever polls when another process holds the lock.
    """

    lock = r.lock(
        SESSION_LOCK_KEY,
        timeout=ttl_ms / 1000,
        sleep=retry_ms / 1000,
        blocking_timeout=wait_ms / 1000,
        thread_local=False,
    )
    if not lock.acquire():
        raise SessionBusyError()
    try:
        yield
    finally:
        try:
            lock.release()
        except LockNotOwnedError:
            # TTL lapsed and another holder owns the key now; leave it alone.
            logger.warning("Session lock expired before release (held past %sms)", ttl_ms)
