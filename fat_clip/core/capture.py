"""Clipboard polling loop feeding new text into the backend."""

import asyncio
import logging
from typing import Optional, Set

from fat_clip.core.classifier import truncate
from fat_clip.core.errors import BackendError, FatClipError
from fat_clip.core.events import CLIPBOARD_UPDATED
from fat_clip.models.schemas import ClipRecord, TextPayload

logger = logging.getLogger(__name__)


class CaptureLoop:
    """Polls the clipboard on a fixed interval and submits changed text.

    Each tick starts a cycle as its own task and does not wait for it. A
    cycle that starts while another is still in flight returns at once, so a
    slow backend causes skipped cycles, never a backlog.
    """

    def __init__(
        self,
        backend,
        clipboard,
        host,
        bus=None,
        interval: float = 0.5,
        show_notifications: bool = True,
        source_hint: str = "Unknown",
    ):
        self.backend = backend
        self.clipboard = clipboard
        self.host = host
        self.bus = bus
        self.interval = interval
        self.show_notifications = show_notifications
        self.source_hint = source_hint

        self.last_fingerprint: Optional[str] = None
        self.is_processing = False
        self._timer: Optional[asyncio.Task] = None
        self._cycles: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self):
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._run())
        logger.info(f"Clipboard capture started (every {self.interval}s)")

    async def stop(self):
        timer, self._timer = self._timer, None
        tasks = [t for t in [timer, *self._cycles] if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._cycles.clear()
        logger.info("Clipboard capture stopped")

    async def _run(self):
        loop = asyncio.get_running_loop()
        next_due = loop.time()
        while True:
            task = asyncio.create_task(self.check_clipboard())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)

            next_due = max(next_due + self.interval, loop.time() + 0.01)
            await asyncio.sleep(next_due - loop.time())

    async def check_clipboard(self) -> Optional[ClipRecord]:
        """One capture cycle; returns the saved record, or None when nothing was saved."""
        if self.is_processing:
            return None

        self.is_processing = True
        try:
            return await self._capture()
        finally:
            self.is_processing = False

    async def _capture(self) -> Optional[ClipRecord]:
        try:
            text = await self.clipboard.read_text()
        except FatClipError as e:
            logger.debug(f"Clipboard read failed: {e}")
            return None

        if not text or not text.strip() or text == self.last_fingerprint:
            return None

        try:
            record = await self.backend.save_captured_content(
                TextPayload(text=text), self.source_hint
            )
        except BackendError as e:
            logger.error(f"Failed to save clipboard content: {e}")
            return None

        self.last_fingerprint = text
        logger.debug(f"Captured clip {record.id}")

        try:
            await self._notify(record, text)
        except Exception as e:
            logger.debug(f"Capture notification failed: {e}")
        if self.bus is not None:
            await self.bus.emit(CLIPBOARD_UPDATED, {"id": record.id})
        return record

    async def _notify(self, record: ClipRecord, text: str):
        if self.show_notifications and not await self.host.is_main_window_visible():
            await self.host.show_notification(
                f"Fat Clip - {record.content_type.value}", truncate(text)
            )
