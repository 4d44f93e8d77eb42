"""Redis-backed cache backend."""

from __future__ import annotations

import logging

from kvsession.errors import BackendUnavailable

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    """Redis-backed cache backend.

    Suitable for multi-worker deployments with shared state. Keys are
    prefixed for namespace isolation; connection errors and timeouts surface
    as BackendUnavailable.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        key_prefix: str = "kvsession:session:",
        socket_timeout: float = 2.0,
    ):
        try:
            import redis
        except ImportError as err:
            raise ImportError(
                "Redis cache backend requires redis package. Install with: uv add redis"
            ) from err
        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._unavailable = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _fail(self, op: str, err: Exception) -> BackendUnavailable:
        logger.warning("Redis %s failed: %s", op, err)
        return BackendUnavailable(f"Redis {op} failed: {err}")

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(self._key(key))
        except self._unavailable as err:
            raise self._fail("GET", err) from err

    def set(self, key: str, value: str, ttl: int) -> None:
        try:
            self._client.setex(self._key(key), ttl, value)
        except self._unavailable as err:
            raise self._fail("SETEX", err) from err

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except self._unavailable as err:
            raise self._fail("DELETE", err) from err

    def list_keys(self) -> list[str]:
        try:
            names = list(self._client.scan_iter(match=f"{self._prefix}*"))
        except self._unavailable as err:
            raise self._fail("SCAN", err) from err
        return [name[len(self._prefix):] for name in names]
