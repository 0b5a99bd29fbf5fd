"""Caching of generated answers using Redis.

Provides:
- get_redis: Cached Redis client from REDIS_URL with decode_responses.
- _key_for_query: Stable cache key derived from the normalized query.
- get_cached_response: Fetch a cached response payload for a query.
- set_cached_response: Store a response payload with TTL from settings.CACHE_TTL_SECONDS.

The cache is best-effort: Redis errors are logged and behave like a miss/no-op.
"""
import hashlib
import json
import logging
from typing import Optional

import redis

from legal_rag.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Return a cached Redis client configured from settings.REDIS_URL."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _key_for_query(query: str) -> str:
    norm_q = " ".join(query.strip().lower().split())
    h = hashlib.sha256(f"{norm_q}|model={settings.OPENAI_MODEL}".encode("utf-8")).hexdigest()
    return f"legal_rag:answer:v1:{h}"


def get_cached_response(query: str) -> Optional[dict]:
    """Get a cached response payload for the query if present.

    Returns:
        Optional[dict]: Parsed JSON payload; None on miss, bad JSON, Redis errors,
        or when caching is disabled.
    """
    if not settings.CACHE_ENABLED:
        return None
    try:
        raw = get_redis().get(_key_for_query(query))
    except redis.RedisError:
        logger.warning("Cache read failed; treating as miss", exc_info=True)
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding undecodable cache entry")
        return None


def set_cached_response(query: str, value: dict) -> None:
    """Store a response payload under the query's key with TTL."""
    if not settings.CACHE_ENABLED:
        return
    try:
        get_redis().setex(_key_for_query(query), settings.CACHE_TTL_SECONDS, json.dumps(value))
    except (redis.RedisError, TypeError):
        logger.warning("Cache write failed", exc_info=True)
