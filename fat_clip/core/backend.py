"""Backend command interface and an in-process implementation of it."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from fat_clip.core.classifier import classify, coerce_payload, make_thumbnail, new_clip_id
from fat_clip.core.clipboard import MemoryClipboard
from fat_clip.core.config import Settings
from fat_clip.core.errors import (
    CleanupRequestError,
    ClipNotFoundError,
    PasteError,
    ShortcutConflictError,
)
from fat_clip.core.events import CLIPBOARD_UPDATED, SETTINGS_CHANGED, SHORTCUTS_CHANGED
from fat_clip.core.history import apply_retention
from fat_clip.core.search import filter_records, order_pinned_first, parse_query, rank_tags
from fat_clip.core.shortcuts import find_conflicts
from fat_clip.models.schemas import (
    CleanupRequest,
    ClipRecord,
    ContentType,
    ImagePayload,
    utc_now,
)

logger = logging.getLogger(__name__)


class ClipBackend(ABC):
    """Commands the session engine issues; transport is up to the implementation.

    Implementations raise ``BackendError`` subclasses on failure.
    """

    @abstractmethod
    async def get_recent_clips(self, limit: int) -> List[ClipRecord]:
        """Up to ``limit`` records, pinned first, most recent first."""

    @abstractmethod
    async def search_clips(self, query: str, limit: int) -> List[ClipRecord]:
        """Records matching the ``tag:``/``#``/``type:`` query grammar."""

    @abstractmethod
    async def get_all_tags(self) -> List[str]:
        ...

    @abstractmethod
    async def search_tags(self, prefix: str) -> List[str]:
        ...

    @abstractmethod
    async def save_captured_content(self, payload: Any, source_hint: str = "Unknown") -> ClipRecord:
        """Classify and persist a payload, returning the stored record."""

    @abstractmethod
    async def get_clip_image_data(self, clip_id: str) -> bytes:
        ...

    @abstractmethod
    async def get_clip_thumbnail_data(self, clip_id: str) -> bytes:
        ...

    @abstractmethod
    async def toggle_clip_pin(self, clip_id: str, pinned: bool) -> None:
        ...

    @abstractmethod
    async def update_clip_tags(self, clip_id: str, tags: List[str]) -> None:
        ...

    @abstractmethod
    async def delete_clip(self, clip_id: str) -> None:
        ...

    @abstractmethod
    async def write_to_clipboard(self, content: str) -> None:
        ...

    @abstractmethod
    async def write_image_to_clipboard(self, data: bytes) -> None:
        ...

    @abstractmethod
    async def paste_and_cleanup(self, content: str, trigger_len: int, search_len: int) -> None:
        """Delete ``trigger_len + search_len`` characters before the caret and
        insert ``content`` there, all or nothing."""

    @abstractmethod
    async def mark_clip_used(self, clip_id: str) -> ClipRecord:
        """Bump ``last_used_at`` after the clip was copied or pasted."""

    @abstractmethod
    async def cleanup_clips(self, request: Union[CleanupRequest, Dict[str, Any]]) -> int:
        """Bulk-delete unpinned clips; returns how many were removed."""

    @abstractmethod
    async def get_settings(self) -> Settings:
        ...

    @abstractmethod
    async def save_settings(self, settings: Settings) -> None:
        ...


class ForegroundField:
    """Text buffer with a caret standing in for the focused field of another app."""

    def __init__(self, text: str = "", caret: Optional[int] = None):
        self.text = text
        self.caret = len(text) if caret is None else max(0, min(caret, len(text)))

    def type_text(self, typed: str):
        self.text = self.text[: self.caret] + typed + self.text[self.caret :]
        self.caret += len(typed)

    def replace_before_caret(self, count: int, content: str):
        if count < 0 or count > self.caret:
            raise PasteError(
                f"Cannot remove {count} characters before caret at {self.caret}"
            )
        start = self.caret - count
        # Text and caret change together
        self.text, self.caret = (
            self.text[:start] + content + self.text[self.caret :],
            start + len(content),
        )


def _local_midnight(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d").astimezone()
    except (TypeError, ValueError):
        raise CleanupRequestError("Invalid date format. Use YYYY-MM-DD")


def resolve_cleanup_window(
    request: CleanupRequest, now: Optional[datetime] = None
) -> Tuple[Optional[datetime], datetime]:
    """Half-open ``[start, end)`` creation-time window a cleanup request covers."""
    if request.mode == "range":
        if not request.start_date:
            raise CleanupRequestError("start_date is required")
        if not request.end_date:
            raise CleanupRequestError("end_date is required")
        start = _local_midnight(request.start_date)
        end = _local_midnight(request.end_date) + timedelta(days=1)
        if end <= start:
            raise CleanupRequestError("End date must be after start date")
        return start, end

    if request.mode == "before":
        if not request.before_date:
            raise CleanupRequestError("before_date is required")
        return None, _local_midnight(request.before_date)

    if request.older_than_days is None:
        raise CleanupRequestError("older_than_days is required")
    if request.older_than_days <= 0:
        raise CleanupRequestError("older_than_days must be greater than 0")
    return None, (now or utc_now()) - timedelta(days=request.older_than_days)


class MemoryBackend(ClipBackend):
    """In-process backend: bounded history, dedup by content, blob stores."""

    def __init__(self, settings: Optional[Settings] = None, clipboard=None, bus=None, field=None):
        self.settings = settings or Settings()
        self.clipboard = clipboard or MemoryClipboard()
        self.bus = bus
        self.field = field or ForegroundField()

        self._clips: Dict[str, ClipRecord] = {}
        self._issued_ids: Set[str] = set()
        self._images: Dict[str, bytes] = {}
        self._thumbnails: Dict[str, bytes] = {}

    async def get_recent_clips(self, limit: int) -> List[ClipRecord]:
        return order_pinned_first(self._clips.values())[: max(0, limit)]

    async def search_clips(self, query: str, limit: int) -> List[ClipRecord]:
        parsed = parse_query(query)
        return filter_records(self._clips.values(), parsed)[: max(0, limit)]

    async def get_all_tags(self) -> List[str]:
        tags = {tag for record in self._clips.values() for tag in record.tags}
        return sorted(tags, key=str.lower)

    async def search_tags(self, prefix: str) -> List[str]:
        return rank_tags(await self.get_all_tags(), prefix)

    async def save_captured_content(self, payload: Any, source_hint: str = "Unknown") -> ClipRecord:
        parsed = coerce_payload(payload)
        record = classify(parsed, source_app=source_hint, clip_id=self._next_id())

        existing = self._find_by_fingerprint(record.fingerprint)
        if existing is not None:
            updated = existing.model_copy(update={"last_used_at": utc_now()})
            self._clips[updated.id] = updated
            return updated

        self._clips[record.id] = record
        if record.content_type == ContentType.IMAGE and isinstance(parsed, ImagePayload):
            self._images[record.id] = parsed.data
            self._thumbnails[record.id] = make_thumbnail(parsed.data)

        self._enforce_retention()
        return record

    async def get_clip_image_data(self, clip_id: str) -> bytes:
        if clip_id not in self._images:
            raise ClipNotFoundError(clip_id)
        return self._images[clip_id]

    async def get_clip_thumbnail_data(self, clip_id: str) -> bytes:
        if clip_id not in self._thumbnails:
            raise ClipNotFoundError(clip_id)
        return self._thumbnails[clip_id]

    async def toggle_clip_pin(self, clip_id: str, pinned: bool) -> None:
        record = self._require(clip_id)
        self._clips[clip_id] = record.model_copy(update={"pinned": bool(pinned)})

    async def update_clip_tags(self, clip_id: str, tags: List[str]) -> None:
        record = self._require(clip_id)
        # Revalidate so tags are de-duplicated and stripped
        self._clips[clip_id] = ClipRecord.model_validate({**record.model_dump(), "tags": list(tags)})

    async def delete_clip(self, clip_id: str) -> None:
        self._require(clip_id)
        self._forget(clip_id)

    async def write_to_clipboard(self, content: str) -> None:
        await self.clipboard.write_text(content)

    async def write_image_to_clipboard(self, data: bytes) -> None:
        await self.clipboard.write_image(data)

    async def paste_and_cleanup(self, content: str, trigger_len: int, search_len: int) -> None:
        self.field.replace_before_caret(int(trigger_len) + int(search_len), content)

    async def mark_clip_used(self, clip_id: str) -> ClipRecord:
        record = self._require(clip_id).model_copy(update={"last_used_at": utc_now()})
        self._clips[clip_id] = record
        await self._emit(CLIPBOARD_UPDATED, {"id": clip_id})
        return record

    async def cleanup_clips(self, request: Union[CleanupRequest, Dict[str, Any]]) -> int:
        if not isinstance(request, CleanupRequest):
            try:
                request = CleanupRequest.model_validate(request)
            except ValidationError as e:
                error = e.errors()[0]
                field = ".".join(str(part) for part in error["loc"])
                if field == "mode":
                    raise CleanupRequestError("Unsupported cleanup mode")
                raise CleanupRequestError(f"Invalid {field}: {error['msg']}")

        start, end = resolve_cleanup_window(request)
        doomed = [
            record.id
            for record in self._clips.values()
            if not record.pinned
            and record.created_at < end
            and (start is None or record.created_at >= start)
        ]
        for clip_id in doomed:
            self._forget(clip_id)

        logger.info(f"Cleanup ({request.mode}) removed {len(doomed)} clips")
        await self._emit(CLIPBOARD_UPDATED)
        return len(doomed)

    async def get_settings(self) -> Settings:
        return self.settings.model_copy(deep=True)

    async def save_settings(self, settings: Settings) -> None:
        conflicts = find_conflicts(settings.shortcuts)
        if conflicts:
            raise ShortcutConflictError(conflicts)

        shortcuts_changed = settings.shortcuts != self.settings.shortcuts
        self.settings = settings.model_copy(deep=True)
        self._enforce_retention()

        await self._emit(SETTINGS_CHANGED, self.settings.model_dump())
        if shortcuts_changed:
            await self._emit(SHORTCUTS_CHANGED, self.settings.shortcuts.model_dump())

    def _next_id(self) -> str:
        clip_id = new_clip_id()
        while clip_id in self._issued_ids:
            clip_id = new_clip_id()
        self._issued_ids.add(clip_id)
        return clip_id

    def _find_by_fingerprint(self, digest: str) -> Optional[ClipRecord]:
        for record in self._clips.values():
            if record.fingerprint == digest:
                return record
        return None

    def _require(self, clip_id: str) -> ClipRecord:
        record = self._clips.get(clip_id)
        if record is None:
            raise ClipNotFoundError(clip_id)
        return record

    def _forget(self, clip_id: str):
        self._clips.pop(clip_id, None)
        self._images.pop(clip_id, None)
        self._thumbnails.pop(clip_id, None)

    def _enforce_retention(self):
        _, evicted = apply_retention(
            list(self._clips.values()),
            self.settings.max_history_items,
            self.settings.auto_cleanup_days,
        )
        for record in evicted:
            self._forget(record.id)
        if evicted:
            logger.debug(f"Evicted {len(evicted)} clips by retention policy")

    async def _emit(self, event: str, payload: Any = None):
        if self.bus is not None:
            await self.bus.emit(event, payload)
