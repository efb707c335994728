from __future__ import annotations

import redis

from app.infra.config import load_config


def get_redis_url() -> str:
    return load_config().redis_url


def create_redis(url: str | None = None) -> redis.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(url or get_redis_url(), decode_responses=True)
