from __future__ import annotations

import time
from contextlib import contextmanager
from uuid import uuid4

import redis


class LockBusyError(RuntimeError):
    pass


@contextmanager
def settings_lock(*, r: redis.Redis, key: str, ttl_ms: int = 5_000, wait_ms: int = 2_000):
    """Critical section for writers of the settings document.

    Waits up to `wait_ms` for the lock; the ttl bounds how long a crashed holder
    can block others. Release only deletes the key while it still carries our token.
    """

    lock_key = f"lock:{key}"
    token = uuid4().hex
    deadline = time.monotonic() + wait_ms / 1000

    while not r.set(lock_key, token, nx=True, px=ttl_ms):
        if time.monotonic() >= deadline:
            raise LockBusyError(f"Settings are busy ({lock_key})")
        time.sleep(0.005)
    try:
        yield
    finally:
        if r.get(lock_key) == token:
            r.delete(lock_key)
