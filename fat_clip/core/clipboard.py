"""Clipboard sources and sinks used by the capture loop and the backend."""

import asyncio
import logging
from typing import Optional

import pyperclip

from fat_clip.core.errors import ClipboardUnavailableError

logger = logging.getLogger(__name__)


class SystemClipboard:
    """Text access to the OS clipboard through pyperclip.

    pyperclip blocks while it shells out to the platform tool, so calls run
    in a worker thread to keep the event loop responsive.
    """

    async def read_text(self) -> str:
        try:
            return await asyncio.to_thread(pyperclip.paste) or ""
        except pyperclip.PyperclipException as e:
            raise ClipboardUnavailableError(str(e)) from e

    async def write_text(self, text: str) -> None:
        try:
            await asyncio.to_thread(pyperclip.copy, text)
        except pyperclip.PyperclipException as e:
            raise ClipboardUnavailableError(str(e)) from e

    async def write_image(self, data: bytes) -> None:
        raise ClipboardUnavailableError("pyperclip cannot place images on the clipboard")


class MemoryClipboard:
    """In-process clipboard holding either text or image bytes."""

    def __init__(self, text: str = ""):
        self.text = text
        self.image: Optional[bytes] = None

    async def read_text(self) -> str:
        return self.text

    async def write_text(self, text: str) -> None:
        self.text = text
        self.image = None

    async def write_image(self, data: bytes) -> None:
        self.image = bytes(data)
        self.text = ""
