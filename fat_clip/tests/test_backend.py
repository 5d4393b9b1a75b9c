"""Tests for the in-process backend."""

import io
from datetime import datetime, timedelta

import pytest
from PIL import Image
from unittest.mock import AsyncMock

from fat_clip.core.backend import ForegroundField, MemoryBackend
from fat_clip.core.clipboard import MemoryClipboard
from fat_clip.core.config import Settings
from fat_clip.core.errors import (
    CleanupRequestError,
    ClipNotFoundError,
    PasteError,
    ShortcutConflictError,
)
from fat_clip.core.events import CLIPBOARD_UPDATED, SETTINGS_CHANGED, SHORTCUTS_CHANGED, EventBus
from fat_clip.models.schemas import (
    CleanupRequest,
    ContentType,
    ImagePayload,
    ShortcutConfig,
    ShortcutsConfig,
    utc_now,
)


def local(year, month, day, hour=12):
    return datetime(year, month, day, hour).astimezone()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def backend(bus):
    return MemoryBackend(
        settings=Settings(max_history_items=3, auto_cleanup_days=None),
        clipboard=MemoryClipboard(),
        bus=bus,
    )


class TestCapture:
    @pytest.mark.asyncio
    async def test_same_content_is_stored_once(self, backend):
        first = await backend.save_captured_content("hello")
        second = await backend.save_captured_content("hello")

        assert second.id == first.id
        assert second.last_used_at >= first.last_used_at
        assert len(await backend.get_recent_clips(10)) == 1

    @pytest.mark.asyncio
    async def test_ids_are_never_reused(self, backend):
        ids = [(await backend.save_captured_content(f"text {i}")).id for i in range(6)]

        assert len(set(ids)) == 6
        assert len(await backend.get_recent_clips(10)) == 3

    @pytest.mark.asyncio
    async def test_pinned_survive_the_count_bound(self, backend):
        keep = await backend.save_captured_content("keep me")
        await backend.toggle_clip_pin(keep.id, True)
        for i in range(5):
            await backend.save_captured_content(f"filler {i}")

        clips = await backend.get_recent_clips(10)

        assert clips[0].id == keep.id
        assert clips[0].pinned

    @pytest.mark.asyncio
    async def test_image_blobs_are_stored(self, backend, png_bytes):
        record = await backend.save_captured_content(ImagePayload(data=png_bytes))

        assert record.content_type == ContentType.IMAGE
        assert await backend.get_clip_image_data(record.id) == png_bytes
        thumb = await backend.get_clip_thumbnail_data(record.id)
        with Image.open(io.BytesIO(thumb)) as image:
            assert max(image.size) <= 200

    @pytest.mark.asyncio
    async def test_unknown_ids_raise(self, backend):
        with pytest.raises(ClipNotFoundError):
            await backend.toggle_clip_pin("missing", True)
        with pytest.raises(ClipNotFoundError):
            await backend.delete_clip("missing")
        with pytest.raises(ClipNotFoundError):
            await backend.get_clip_image_data("missing")


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_and_tags(self, backend, seed, make_record):
        seed(
            backend,
            make_record("alpha", tags=["work"]),
            make_record("beta", tags=["Home", "work"]),
            make_record("gamma", tags=["apple"]),
        )

        found = await backend.search_clips("tag:work", 10)
        assert [r.content for r in found] == ["alpha", "beta"]
        assert [r.content for r in await backend.search_clips("#home BETA", 10)] == ["beta"]
        assert await backend.get_all_tags() == ["apple", "Home", "work"]
        assert await backend.search_tags("o") == ["Home", "work"]

    @pytest.mark.asyncio
    async def test_update_tags_cleans_input(self, backend):
        record = await backend.save_captured_content("x")

        await backend.update_clip_tags(record.id, ["a", " a ", "", "b"])

        assert (await backend.get_recent_clips(1))[0].tags == ["a", "b"]


class TestPasteAndCleanup:
    @pytest.mark.asyncio
    async def test_removes_trigger_and_query_then_inserts(self):
        field = ForegroundField("hello /vabc")
        backend = MemoryBackend(field=field)

        await backend.paste_and_cleanup("WORLD", 2, 3)

        assert field.text == "hello WORLD"
        assert field.caret == 11

    @pytest.mark.asyncio
    async def test_empty_content(self):
        field = ForegroundField("hello /vabc")
        backend = MemoryBackend(field=field)

        await backend.paste_and_cleanup("", 2, 3)

        assert field.text == "hello "
        assert field.caret == 6

    @pytest.mark.asyncio
    async def test_caret_in_middle(self):
        field = ForegroundField("ab/vxyzCD", caret=7)
        backend = MemoryBackend(field=field)

        await backend.paste_and_cleanup("Q", 2, 3)

        assert field.text == "abQCD"
        assert field.caret == 3

    @pytest.mark.asyncio
    async def test_too_few_characters_changes_nothing(self):
        field = ForegroundField("/v")
        backend = MemoryBackend(field=field)

        with pytest.raises(PasteError):
            await backend.paste_and_cleanup("content", 2, 3)

        assert field.text == "/v"
        assert field.caret == 2

    @pytest.mark.asyncio
    async def test_negative_lengths_are_refused(self):
        field = ForegroundField("abc")
        backend = MemoryBackend(field=field)

        with pytest.raises(PasteError):
            await backend.paste_and_cleanup("x", -5, 1)
        assert field.text == "abc"


class TestCleanup:
    @pytest.fixture
    def dated(self, backend, seed, make_record):
        return seed(
            backend,
            make_record("tenth", created_at=local(2024, 1, 10)),
            make_record("eleventh", created_at=local(2024, 1, 11)),
            make_record("pinned tenth", pinned=True, created_at=local(2024, 1, 10, 8)),
        )

    async def contents(self, backend):
        return sorted(r.content for r in await backend.get_recent_clips(10))

    @pytest.mark.asyncio
    async def test_range_is_inclusive_of_both_days(self, backend, dated):
        deleted = await backend.cleanup_clips(
            CleanupRequest(mode="range", start_date="2024-01-10", end_date="2024-01-10")
        )

        assert deleted == 1
        assert await self.contents(backend) == ["eleventh", "pinned tenth"]

    @pytest.mark.asyncio
    async def test_before_excludes_the_cutoff_day(self, backend, dated):
        deleted = await backend.cleanup_clips({"mode": "before", "before_date": "2024-01-11"})

        assert deleted == 1
        assert await self.contents(backend) == ["eleventh", "pinned tenth"]

    @pytest.mark.asyncio
    async def test_older_than(self, backend, seed, make_record):
        seed(
            backend,
            make_record("recent", created_at=utc_now() - timedelta(days=1)),
            make_record("old", created_at=utc_now() - timedelta(days=10)),
        )

        deleted = await backend.cleanup_clips(CleanupRequest(mode="older_than", older_than_days=7))

        assert deleted == 1
        assert await self.contents(backend) == ["recent"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_data",
        [
            {"mode": "range", "start_date": "2024-01-10"},
            {"mode": "range", "start_date": "2024-01-10", "end_date": "2024-01-08"},
            {"mode": "before"},
            {"mode": "before", "before_date": "2024/01/10"},
            {"mode": "older_than", "older_than_days": 0},
            {"mode": "older_than"},
            {"mode": "bogus"},
        ],
    )
    async def test_invalid_requests(self, backend, dated, request_data):
        with pytest.raises(CleanupRequestError):
            await backend.cleanup_clips(request_data)

        assert len(await backend.get_recent_clips(10)) == 3

    @pytest.mark.asyncio
    async def test_cleanup_announces_update(self, backend, bus, dated):
        listener = AsyncMock()
        bus.listen(CLIPBOARD_UPDATED, listener)

        await backend.cleanup_clips({"mode": "before", "before_date": "2024-01-01"})

        listener.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_field_errors_name_the_field(self, backend):
        with pytest.raises(CleanupRequestError, match="older_than_days"):
            await backend.cleanup_clips({"mode": "older_than", "older_than_days": "abc"})

        with pytest.raises(CleanupRequestError, match="Unsupported cleanup mode"):
            await backend.cleanup_clips({"mode": "bogus"})


class TestMarkUsed:
    @pytest.mark.asyncio
    async def test_bumps_last_use_and_announces(self, backend, bus, seed, make_record):
        hour_ago = utc_now() - timedelta(hours=1)
        seed(
            backend,
            make_record("newer", created_at=utc_now() - timedelta(minutes=5)),
            make_record("older", created_at=hour_ago, clip_id="old"),
        )
        listener = AsyncMock()
        bus.listen(CLIPBOARD_UPDATED, listener)

        record = await backend.mark_clip_used("old")

        assert record.last_used_at > hour_ago
        assert [r.content for r in await backend.get_recent_clips(10)] == ["older", "newer"]
        listener.assert_awaited_once_with({"id": "old"})

    @pytest.mark.asyncio
    async def test_unknown_id(self, backend):
        with pytest.raises(ClipNotFoundError):
            await backend.mark_clip_used("missing")


class TestSettings:
    @pytest.mark.asyncio
    async def test_conflicting_shortcuts_are_rejected(self, backend):
        shortcuts = ShortcutsConfig(pin_selected=ShortcutConfig(key="T"))

        with pytest.raises(ShortcutConflictError) as exc_info:
            await backend.save_settings(Settings(shortcuts=shortcuts))

        assert exc_info.value.conflicts == ["pin_selected conflicts with open_tags"]
        assert (await backend.get_settings()).max_history_items == 3

    @pytest.mark.asyncio
    async def test_events_follow_a_save(self, backend, bus):
        settings_listener = AsyncMock()
        shortcuts_listener = AsyncMock()
        bus.listen(SETTINGS_CHANGED, settings_listener)
        bus.listen(SHORTCUTS_CHANGED, shortcuts_listener)

        await backend.save_settings(Settings(timeline_mode="compact"))
        settings_listener.assert_awaited_once()
        shortcuts_listener.assert_not_awaited()

        changed = ShortcutsConfig(pin_selected=ShortcutConfig(key="K"))
        await backend.save_settings(Settings(shortcuts=changed))
        shortcuts_listener.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lower_bound_applies_immediately(self, backend):
        for i in range(3):
            await backend.save_captured_content(f"t{i}")

        await backend.save_settings(Settings(max_history_items=1))

        assert len(await backend.get_recent_clips(10)) == 1
