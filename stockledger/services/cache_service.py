"""
Redis cache for product list pages.

Pages are cached per tenant under ``{prefix}:tenant:{tenant_id}:{module}:{key}``
and dropped wholesale whenever a ledger or catalog write touches that tenant.
Redis being down only costs speed: every call falls back to the loader.
"""

import hashlib
import json
import logging
from typing import Any, Callable, Dict, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)

PRODUCTS_MODULE = 'products'


class CacheService:
    """Tenant-scoped cache-aside over one Redis client."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'stock'
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'stock')
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] disabled by CACHE_ENABLED")
            return

        url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=3, socket_timeout=3,
                                health_check_interval=30)
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] {url} unreachable ({e}); serving from the database")
            return
        self.client = client
        logger.info(f"[CACHE] connected to {url}")

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def key(self, tenant_id: int, module: str, key: str) -> str:
        return f"{self.prefix}:tenant:{tenant_id}:{module}:{key}"

    def memoize(self, tenant_id: int, module: str, key: str, loader: Callable[[], Any], ttl: int) -> Any:
        """Return the cached value for ``key``, or load it and keep it for ``ttl`` seconds."""
        if self.client is None:
            return loader()

        full_key = self.key(tenant_id, module, key)
        try:
            cached = self.client.get(full_key)
        except RedisError as e:
            logger.warning(f"[CACHE] read {full_key} failed: {e}")
            cached = None
        if cached is not None:
            return json.loads(cached)

        value = loader()
        try:
            self.client.setex(full_key, ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning(f"[CACHE] write {full_key} failed: {e}")
        return value

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Delete every cached entry of one tenant module; returns the number of keys dropped."""
        if self.client is None:
            return 0
        pattern = self.key(tenant_id, module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"[CACHE] invalidate {pattern} failed: {e}")
            return 0
        if keys:
            logger.info(f"[CACHE] invalidated {pattern} ({len(keys)} keys)")
        return len(keys)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> Optional[CacheService]:
    """Cache service instance, or None outside an initialized app (CLI scripts, bare services)."""
    return _cache_service


def make_key(params: Dict[str, Any]) -> str:
    """Stable short key for a dict of query parameters."""
    raw = json.dumps(params, sort_keys=True, default=str)
    return hashlib.sha1(raw.encode('utf-8')).hexdigest()[:16]


def invalidate_stock_views(tenant_id: int) -> None:
    """Drop cached pages that show stock balances after a ledger or catalog write."""
    cache = get_cache()
    if cache is None:
        return
    cache.invalidate_module(tenant_id, PRODUCTS_MODULE)
