from __future__ import annotations

import json
import logging
import os
from typing import Optional

import redis


logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/2")
CACHE_ENABLED = os.environ.get("CACHE_ENABLED", "0") == "1"
CACHE_TTL = int(os.environ.get("CACHE_TTL", "3600"))

_redis: Optional[redis.Redis] = None


def _client() -> Optional[redis.Redis]:
    global _redis
    if not CACHE_ENABLED:
        return None
    if _redis is None:
        _redis = redis.from_url(REDIS_URL)
    return _redis


def cache_set_outfit(key: str, normal_url: str, scene_normal_url: str | None = None) -> None:
    r = _client()
    if not r:
        return
    payload = {"normal_url": normal_url}
    if scene_normal_url:
        payload["scene_normal_url"] = scene_normal_url
    try:
        r.setex(f"outfit:{key}", CACHE_TTL, json.dumps(payload))
    except redis.RedisError as e:
        logger.warning("Outfit cache write failed for %s: %s", key, e)


def cache_get_outfit(key: str) -> Optional[dict]:
    r = _client()
    if not r:
        return None
    try:
        v = r.get(f"outfit:{key}")
    except redis.RedisError as e:
        logger.warning("Outfit cache read failed for %s: %s", key, e)
        return None
    if not v:
        return None
    try:
        return json.loads(v)
    except ValueError:
        return None


def cache_forget_outfit(key: str) -> None:
    r = _client()
    if not r:
        return
    try:
        r.delete(f"outfit:{key}")
    except redis.RedisError as e:
        logger.warning("Outfit cache delete failed for %s: %s", key, e)
