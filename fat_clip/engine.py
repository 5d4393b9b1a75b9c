"""Wires the backend, event bus, host and UI sessions into one engine."""

import logging
from typing import Any, Callable, List, Optional

from fat_clip.core.backend import ClipBackend, MemoryBackend
from fat_clip.core.capture import CaptureLoop
from fat_clip.core.clipboard import SystemClipboard
from fat_clip.core.config import Settings, load_settings
from fat_clip.core.events import (
    CLIPBOARD_UPDATED,
    INPUT_PANEL_HIDE,
    INPUT_PANEL_SEARCH,
    INPUT_PANEL_SELECT_INDEX,
    INPUT_PANEL_SHOW,
    SETTINGS_CHANGED,
    SHORTCUTS_CHANGED,
    EventBus,
)
from fat_clip.core.host import Host, LoggingHost
from fat_clip.core.input_panel import InputPanelController
from fat_clip.core.selection import MainListSession
from fat_clip.models.schemas import ClipRecord, ShortcutsConfig

logger = logging.getLogger(__name__)


class ClipboardEngine:
    """One running instance: capture loop, main list and quick-paste panel."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[ClipBackend] = None,
        host: Optional[Host] = None,
        clipboard=None,
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings or load_settings()
        self.bus = bus or EventBus()
        self.clipboard = clipboard or SystemClipboard()
        self.host = host or LoggingHost()
        self.backend = backend or MemoryBackend(
            settings=self.settings, clipboard=self.clipboard, bus=self.bus
        )

        self.main = MainListSession(self.backend, self.host, self.settings)
        self.input_panel = InputPanelController(self.backend, self.host, self.settings)
        self.capture = CaptureLoop(
            self.backend,
            self.clipboard,
            self.host,
            bus=self.bus,
            interval=self.settings.poll_interval,
            show_notifications=self.settings.show_notifications,
        )
        self._unlisten: List[Callable[[], None]] = []

    def subscribe(self):
        if self._unlisten:
            return
        handlers = {
            CLIPBOARD_UPDATED: self._on_clipboard_updated,
            SETTINGS_CHANGED: self._on_settings_changed,
            SHORTCUTS_CHANGED: self._on_shortcuts_changed,
            INPUT_PANEL_SHOW: self._on_input_panel_show,
            INPUT_PANEL_HIDE: self._on_input_panel_hide,
            INPUT_PANEL_SEARCH: self._on_input_panel_search,
            INPUT_PANEL_SELECT_INDEX: self._on_input_panel_select_index,
        }
        for event, handler in handlers.items():
            self._unlisten.append(self.bus.listen(event, handler))

    async def start(self, capture: bool = True):
        self.subscribe()
        await self.main.reload()
        await self.main.refresh_tags()
        if capture:
            self.capture.start()
        logger.info("Fat Clip engine started")

    async def stop(self):
        await self.capture.stop()
        for unlisten in self._unlisten:
            unlisten()
        self._unlisten = []
        logger.info("Fat Clip engine stopped")

    async def save_settings(self, settings: Settings):
        """Persist through the backend; raises ShortcutConflictError on clashes."""
        await self.backend.save_settings(settings)

    async def find_clip(self, clip_id: str) -> Optional[ClipRecord]:
        for record in await self.backend.get_recent_clips(self.settings.max_history_items):
            if record.id == clip_id:
                return record
        return None

    async def _on_clipboard_updated(self, payload: Any):
        await self.main.reload()
        await self.input_panel.reload()

    async def _on_settings_changed(self, payload: Any):
        settings = payload if isinstance(payload, Settings) else Settings.model_validate(payload)
        self.settings = settings
        self.main.apply_settings(settings)
        self.input_panel.settings = settings
        self.capture.interval = settings.poll_interval
        self.capture.show_notifications = settings.show_notifications
        await self.main.reload()

    async def _on_shortcuts_changed(self, payload: Any):
        self.main.shortcuts = ShortcutsConfig.model_validate(payload or {})

    async def _on_input_panel_show(self, payload: Any):
        payload = payload or {}
        await self.input_panel.show(
            query=payload.get("query", ""),
            trigger_length=payload.get("trigger_length"),
            selection_modifier=payload.get("selection_modifier"),
        )

    async def _on_input_panel_hide(self, payload: Any):
        self.input_panel.hide()

    async def _on_input_panel_search(self, payload: Any):
        query = payload.get("query", "") if isinstance(payload, dict) else str(payload or "")
        self.input_panel.update_query(query)

    async def _on_input_panel_select_index(self, payload: Any):
        if isinstance(payload, dict):
            await self.input_panel.select_index(int(payload["index"]), payload.get("search_len"))
        else:
            await self.input_panel.select_index(int(payload))
