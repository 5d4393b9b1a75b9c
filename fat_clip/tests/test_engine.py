"""Tests for engine wiring, the event bus and configuration."""

import asyncio

import pytest
from unittest.mock import AsyncMock

from fat_clip.core.backend import ForegroundField, MemoryBackend
from fat_clip.core.clipboard import MemoryClipboard
from fat_clip.core.config import Settings, load_settings
from fat_clip.core.errors import ShortcutConflictError
from fat_clip.core.events import (
    CLIPBOARD_UPDATED,
    INPUT_PANEL_HIDE,
    INPUT_PANEL_SEARCH,
    INPUT_PANEL_SELECT_INDEX,
    INPUT_PANEL_SHOW,
    EventBus,
)
from fat_clip.core.timeline import TimelineMode
from fat_clip.engine import ClipboardEngine
from fat_clip.models.schemas import KeyEvent, ShortcutConfig, ShortcutsConfig


class TestEventBus:
    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self):
        bus = EventBus()
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        bus.listen("evt", broken)
        bus.listen("evt", healthy)

        await bus.emit("evt", {"n": 1})

        healthy.assert_awaited_once_with({"n": 1})

    @pytest.mark.asyncio
    async def test_unlisten(self):
        bus = EventBus()
        handler = AsyncMock()
        unlisten = bus.listen("evt", handler)

        unlisten()
        await bus.emit("evt")

        handler.assert_not_awaited()
        assert bus.listener_count("evt") == 0


class TestConfig:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FATCLIP_MAX_HISTORY_ITEMS", "20")
        monkeypatch.setenv("FATCLIP_AUTO_CLEANUP_DAYS", "0")
        monkeypatch.setenv("FATCLIP_TIMELINE_MODE", "Compact")
        monkeypatch.setenv("FATCLIP_INPUT_PANEL_MODIFIER", "shift")
        monkeypatch.setenv("FATCLIP_SHOW_NOTIFICATIONS", "no")

        settings = load_settings()

        assert settings.max_history_items == 20
        assert settings.auto_cleanup_days is None
        assert settings.timeline_mode == "compact"
        assert settings.input_panel_selection_modifier == "ctrl"
        assert settings.show_notifications is False

    def test_invalid_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("FATCLIP_PAGE_SIZE", "lots")

        assert load_settings() == Settings()


class TestClipboardEngine:
    @pytest.fixture
    def clipboard(self):
        return MemoryClipboard()

    @pytest.fixture
    def field(self):
        return ForegroundField("note /vwor")

    @pytest.fixture
    def engine(self, clipboard, field, host):
        settings = Settings(auto_cleanup_days=None, poll_interval=0.05)
        bus = EventBus()
        backend = MemoryBackend(settings=settings, clipboard=clipboard, bus=bus, field=field)
        return ClipboardEngine(
            settings=settings, backend=backend, host=host, clipboard=clipboard, bus=bus
        )

    @pytest.mark.asyncio
    async def test_clipboard_update_reloads_main_list(self, engine):
        await engine.start(capture=False)
        await engine.backend.save_captured_content("fresh")
        assert engine.main.items == []

        await engine.bus.emit(CLIPBOARD_UPDATED)

        assert [r.content for r in engine.main.items] == ["fresh"]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_input_panel_driven_by_events(self, engine, field):
        await engine.backend.save_captured_content("work item")
        await engine.backend.save_captured_content("other")
        await engine.start(capture=False)

        await engine.bus.emit(INPUT_PANEL_SHOW, {"query": "", "trigger_length": 2})
        await engine.bus.emit(INPUT_PANEL_SEARCH, "wor")
        assert [r.content for r in engine.input_panel.candidates] == ["work item"]

        await engine.bus.emit(INPUT_PANEL_SELECT_INDEX, {"index": 0})

        assert field.text == "note work item"
        assert not engine.input_panel.is_open
        await engine.stop()

    @pytest.mark.asyncio
    async def test_input_panel_hide_event(self, engine):
        await engine.start(capture=False)
        await engine.bus.emit(INPUT_PANEL_SHOW, {"query": "x"})

        await engine.bus.emit(INPUT_PANEL_HIDE)

        assert not engine.input_panel.is_open
        await engine.stop()

    @pytest.mark.asyncio
    async def test_settings_changes_reach_sessions(self, engine):
        await engine.start(capture=False)
        shortcuts = ShortcutsConfig(pin_selected=ShortcutConfig(key="K"))

        await engine.save_settings(Settings(timeline_mode="compact", shortcuts=shortcuts))

        assert engine.main.timeline_mode == TimelineMode.COMPACT
        assert engine.main.shortcuts.pin_selected.key == "K"
        await engine.stop()

    @pytest.mark.asyncio
    async def test_conflicting_settings_are_refused(self, engine):
        shortcuts = ShortcutsConfig(navigate_up=ShortcutConfig(key="ArrowDown"))

        with pytest.raises(ShortcutConflictError):
            await engine.save_settings(Settings(shortcuts=shortcuts))

    @pytest.mark.asyncio
    async def test_capture_reaches_main_list(self, engine, clipboard):
        clipboard.text = "captured by the loop"
        await engine.start()

        await asyncio.sleep(0.3)

        assert [r.content for r in engine.main.items] == ["captured by the loop"]
        await engine.stop()
        assert not engine.capture.is_running

    @pytest.mark.asyncio
    async def test_copy_back_through_keyboard(self, engine, clipboard):
        await engine.backend.save_captured_content("first")
        await engine.start(capture=False)

        await engine.main.handle_key(KeyEvent(key="Enter"))

        assert clipboard.text == "first"
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, engine):
        await engine.start(capture=False)
        assert engine.bus.listener_count(CLIPBOARD_UPDATED) == 1

        await engine.stop()

        assert engine.bus.listener_count(CLIPBOARD_UPDATED) == 0
