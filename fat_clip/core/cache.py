"""In-memory cache for image and thumbnail bytes fetched from the backend."""

import time
import asyncio
from typing import Any, Dict, Optional


class BlobCache:
    """LRU cache with TTL so list rendering does not refetch image data."""

    def __init__(self, max_entries: int = 256, ttl: int = 600):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.access_order: Dict[str, float] = {}
        self.max_entries = max_entries
        self.ttl = ttl
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[bytes]:
        """Get from cache, dropping the entry if it expired."""
        async with self._lock:
            if key in self.cache:
                entry = self.cache[key]

                if time.time() > entry["expires_at"]:
                    del self.cache[key]
                    del self.access_order[key]
                    return None

                self.access_order[key] = time.time()
                return entry["value"]

            return None

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None):
        """Store bytes with TTL, evicting least recently used entries when full."""
        async with self._lock:
            current_time = time.time()

            if len(self.cache) >= self.max_entries * 0.8:
                self._cleanup_expired()

            if key not in self.cache and len(self.cache) >= self.max_entries:
                self._evict_lru()

            self.cache[key] = {
                "value": value,
                "expires_at": current_time + (self.ttl if ttl is None else ttl),
            }
            self.access_order[key] = current_time

    async def delete(self, key: str):
        async with self._lock:
            if key in self.cache:
                del self.cache[key]
                del self.access_order[key]

    async def discard_clip(self, clip_id: str):
        """Forget every blob cached for a clip."""
        async with self._lock:
            for key in [k for k in self.cache if k.endswith(f":{clip_id}")]:
                del self.cache[key]
                del self.access_order[key]

    async def clear(self):
        async with self._lock:
            self.cache.clear()
            self.access_order.clear()

    def _cleanup_expired(self):
        current_time = time.time()
        expired_keys = [
            key
            for key, entry in self.cache.items()
            if current_time > entry["expires_at"]
        ]

        for key in expired_keys:
            del self.cache[key]
            if key in self.access_order:
                del self.access_order[key]

    def _evict_lru(self):
        """Evict the least recently used fifth of the cache."""
        if not self.access_order:
            return

        sorted_keys = sorted(self.access_order.items(), key=lambda x: x[1])
        evict_count = max(1, len(sorted_keys) // 5)

        for key, _ in sorted_keys[:evict_count]:
            if key in self.cache:
                del self.cache[key]
            del self.access_order[key]

    def get_stats(self) -> Dict[str, Any]:
        current_time = time.time()
        expired_count = sum(
            1 for entry in self.cache.values() if current_time > entry["expires_at"]
        )
        total_bytes = sum(len(entry["value"]) for entry in self.cache.values())

        return {
            "total_entries": len(self.cache),
            "expired_entries": expired_count,
            "active_entries": len(self.cache) - expired_count,
            "total_bytes": total_bytes,
            "max_entries": self.max_entries,
            "usage_percent": round((len(self.cache) / self.max_entries) * 100, 1),
        }
