"""The history snapshot a UI surface works from, and the retention policy."""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from fat_clip.core.cache import BlobCache
from fat_clip.core.errors import BackendError
from fat_clip.core.search import apply_facet, collect_tags, combined_query, order_pinned_first
from fat_clip.models.schemas import ClipRecord, ContentType, SearchQuery, utc_now

logger = logging.getLogger(__name__)


def apply_retention(
    records: Sequence[ClipRecord],
    max_items: Optional[int],
    max_age_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[ClipRecord], List[ClipRecord]]:
    """Split records into (kept, evicted) under the count and age policy.

    Pinned records are always kept, even when they alone exceed
    ``max_items``. Unpinned records older than the age cutoff go first, then
    the least recently used unpinned records until the bound holds.
    """
    now = now or utc_now()
    kept: List[ClipRecord] = []
    evicted: List[ClipRecord] = []

    cutoff = now - timedelta(days=max_age_days) if max_age_days else None
    for record in records:
        if not record.pinned and cutoff is not None and record.created_at < cutoff:
            evicted.append(record)
        else:
            kept.append(record)

    if max_items is not None and len(kept) > max_items:
        candidates = sorted(
            (r for r in kept if not r.pinned), key=lambda r: r.last_used_at
        )
        overflow = len(kept) - max_items
        dropped = {r.id for r in candidates[:overflow]}
        evicted.extend(r for r in kept if r.id in dropped)
        kept = [r for r in kept if r.id not in dropped]

    return kept, evicted


class HistoryStore:
    """Snapshot of the visible history window for one surface.

    The snapshot is never mutated in place: every load replaces it with what
    the backend returned, ordered pinned-first.
    """

    def __init__(self, backend, limit: int = 50, media_cache: Optional[BlobCache] = None):
        self.backend = backend
        self.limit = limit
        self.media_cache = media_cache or BlobCache()
        self._records: List[ClipRecord] = []

    @property
    def records(self) -> List[ClipRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def replace(self, records: Sequence[ClipRecord]) -> List[ClipRecord]:
        self._records = order_pinned_first(records)
        return self.records

    def get(self, clip_id: str) -> Optional[ClipRecord]:
        for record in self._records:
            if record.id == clip_id:
                return record
        return None

    async def load_recent(self) -> bool:
        """Replace the snapshot with the most recent clips; False on failure."""
        try:
            records = await self.backend.get_recent_clips(self.limit)
        except BackendError as e:
            logger.error(f"Failed to load clips: {e}")
            return False
        self.replace(records)
        return True

    async def load(self, query: SearchQuery) -> bool:
        """Load the slice matching ``query``.

        Text and tag terms go to the backend search; the content-type facet
        and the pinned-first ordering are applied locally.
        """
        if not query.text and not query.tags:
            ok = await self.load_recent()
        else:
            try:
                records = await self.backend.search_clips(
                    combined_query(query.text, query.tags), self.limit
                )
            except BackendError as e:
                logger.error(f"Search failed: {e}")
                return False
            self.replace(records)
            ok = True

        if ok and query.content_type is not None:
            self._records = apply_facet(self._records, query.content_type)
        return ok

    @property
    def tags(self) -> List[str]:
        return collect_tags(self._records)

    @property
    def pinned_count(self) -> int:
        return sum(1 for r in self._records if r.pinned)

    def content_type_counts(self) -> Dict[ContentType, int]:
        return dict(Counter(r.content_type for r in self._records))

    async def image_data(self, clip_id: str) -> bytes:
        return await self._cached_blob(f"image:{clip_id}", self.backend.get_clip_image_data, clip_id)

    async def thumbnail_data(self, clip_id: str) -> bytes:
        return await self._cached_blob(
            f"thumb:{clip_id}", self.backend.get_clip_thumbnail_data, clip_id
        )

    async def forget_media(self, clip_id: str):
        await self.media_cache.discard_clip(clip_id)

    async def _cached_blob(self, key: str, fetch, clip_id: str) -> bytes:
        cached = await self.media_cache.get(key)
        if cached is not None:
            return cached
        data = await fetch(clip_id)
        await self.media_cache.set(key, data)
        return data
