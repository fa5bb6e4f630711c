"""
In-memory transient cache with per-entry TTL
"""
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel

from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

CACHE_PREFIX = "aipw_"


class CacheEntry(BaseModel):
    """Cached value with its absolute expiry (epoch seconds)"""
    value: Any
    expires_at: float


class TransientCache:
    """
    Key/value cache where every entry expires after its TTL.
    Expired entries are evicted lazily on read.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """Get cached value, None if missing or expired"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.time() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        self._entries[key] = CacheEntry(value=value, expires_at=time.time() + ttl)
        return True

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix, returns number of removed entries"""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info(f"Cleared {len(keys)} cached entries", extra={"prefix": prefix})
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)


_cache: Optional[TransientCache] = None


def get_cache() -> TransientCache:
    """Get the process-wide cache"""
    global _cache
    if _cache is None:
        _cache = TransientCache()
    return _cache
