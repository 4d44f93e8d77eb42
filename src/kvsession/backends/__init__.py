"""Cache backends (memory, redis, sql)."""

from kvsession.backends.memory import MemoryCacheBackend
from kvsession.backends.redis import RedisCacheBackend
from kvsession.backends.sql import SqlCacheBackend

__all__ = ["MemoryCacheBackend", "RedisCacheBackend", "SqlCacheBackend"]
