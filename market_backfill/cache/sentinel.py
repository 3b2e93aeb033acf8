"""
Sentinel cache marking backfill runs as done.

A sentinel is a Redis key with a TTL. While it exists the task is
skipped; once it expires the task is eligible to run again. Keys are
never deleted explicitly.
"""

from typing import Any, Optional

import redis

from ..config import SentinelConfig
from ..utils.logging import get_logger

TRUE_VALUES = {"1", "true", "yes"}


class SentinelCache:
    """
    Boolean key/TTL store on top of a Redis client.

    Backend failures never break the caller's control flow: reads
    report "not set" so the task runs, and writes report False.
    """

    def __init__(self, client: Any, key_prefix: str = ""):
        self.client = client
        self.key_prefix = key_prefix
        self.logger = get_logger(__name__)

    @classmethod
    def from_config(cls, sentinel_config: SentinelConfig) -> "SentinelCache":
        client = redis.Redis.from_url(
            sentinel_config.redis_url,
            socket_timeout=sentinel_config.socket_timeout,
            socket_connect_timeout=sentinel_config.socket_timeout
        )
        return cls(client, key_prefix=sentinel_config.key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get_bool(self, key: str) -> bool:
        """True only if the key exists, has not expired and holds a true value."""
        try:
            value: Optional[Any] = self.client.get(self._key(key))
        except redis.RedisError as e:
            self.logger.warning(f"Sentinel lookup for {key} failed, treating as unset: {e}")
            return False

        if value is None:
            return False
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return str(value).strip().lower() in TRUE_VALUES

    def set(self, key: str, value: bool, ttl_seconds: int) -> bool:
        """
        Store a boolean sentinel that expires after ``ttl_seconds``.

        Returns:
            True if the backend accepted the write
        """
        if ttl_seconds <= 0:
            raise ValueError(f"Sentinel TTL must be positive, got {ttl_seconds}")
        try:
            self.client.set(self._key(key), "1" if value else "0", ex=int(ttl_seconds))
        except redis.RedisError as e:
            self.logger.error(f"Failed to set sentinel {key}: {e}")
            return False
        self.logger.debug(f"Sentinel {key} set to {value} for {ttl_seconds}s")
        return True
