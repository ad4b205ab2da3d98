# CREATE FILE: utils/cache.py

import json
import threading
import time
from typing import Any, Callable, Dict, Optional

import redis

from utils.logging import get_logger


class TTLCache:
    """Key/value cache with per-entry TTL.

    Injected into the engines that need caching instead of living as a
    module-level map. ``clock`` returns seconds and defaults to
    ``time.monotonic``; tests pass a fake clock to control expiry. When a
    ``redis_url`` is given and reachable, entries are stored in Redis with
    ``SETEX`` (values must be JSON serializable); otherwise an in-process
    dict is used.
    """

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = None,
                 redis_url: str = None, namespace: str = "f2t"):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self.default_ttl = default_ttl
        self.clock = clock or time.monotonic
        self.namespace = namespace
        self.logger = get_logger("ttl_cache")
        self.local_cache: Dict[str, tuple] = {}
        self.cache_stats = {"hits": 0, "misses": 0, "errors": 0}
        self._lock = threading.RLock()

        self.redis_client = None
        if redis_url:
            try:
                client = redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self.redis_client = client
                self.logger.info("Connected to Redis cache", redis_url=redis_url)
            except redis.RedisError as e:
                self.logger.warning("Redis connection failed, using local cache", error=e)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired"""
        cache_key = self._key(key)

        with self._lock:
            if self.redis_client:
                try:
                    cached = self.redis_client.get(cache_key)
                except redis.RedisError as e:
                    self.logger.error("Cache get error", error=e, cache_key=cache_key)
                    self.cache_stats["errors"] += 1
                    return None
                if cached is not None:
                    self.cache_stats["hits"] += 1
                    return json.loads(cached)
                self.cache_stats["misses"] += 1
                return None

            if cache_key in self.local_cache:
                value, expiry = self.local_cache[cache_key]
                if self.clock() < expiry:
                    self.cache_stats["hits"] += 1
                    return value
                del self.local_cache[cache_key]

            self.cache_stats["misses"] += 1
            return None

    def set(self, key: str, value: Any, ttl: float = None):
        cache_key = self._key(key)
        ttl = ttl or self.default_ttl

        with self._lock:
            if self.redis_client:
                try:
                    self.redis_client.setex(cache_key, int(max(1, ttl)), json.dumps(value))
                except redis.RedisError as e:
                    self.logger.error("Cache set error", error=e, cache_key=cache_key)
                    self.cache_stats["errors"] += 1
                return

            self.local_cache[cache_key] = (value, self.clock() + ttl)
            if len(self.local_cache) > 1000:
                self._cleanup_local_cache()

    def invalidate(self, key: str = None):
        """Drop one key, or every key in this cache's namespace when key is None"""
        with self._lock:
            if self.redis_client:
                try:
                    if key is not None:
                        self.redis_client.delete(self._key(key))
                    else:
                        for cache_key in self.redis_client.scan_iter(f"{self.namespace}:*"):
                            self.redis_client.delete(cache_key)
                except redis.RedisError as e:
                    self.logger.error("Cache invalidate error", error=e)
                    self.cache_stats["errors"] += 1
                return

            if key is None:
                self.local_cache.clear()
            else:
                self.local_cache.pop(self._key(key), None)

    def _cleanup_local_cache(self):
        now = self.clock()
        expired_keys = [
            key for key, (_, expiry) in self.local_cache.items()
            if now >= expiry
        ]
        for key in expired_keys:
            del self.local_cache[key]

        self.logger.debug("Local cache cleanup", removed_entries=len(expired_keys))

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_requests = self.cache_stats["hits"] + self.cache_stats["misses"]
            hit_rate = (self.cache_stats["hits"] / total_requests) if total_requests > 0 else 0

            return {
                "hits": self.cache_stats["hits"],
                "misses": self.cache_stats["misses"],
                "errors": self.cache_stats["errors"],
                "hit_rate": round(hit_rate, 3),
                "local_cache_size": len(self.local_cache),
                "redis_connected": self.redis_client is not None
            }
