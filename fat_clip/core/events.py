"""Async event bus carrying backend-pushed notifications to the sessions."""

import logging
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

CLIPBOARD_UPDATED = "clipboard-updated"
SETTINGS_CHANGED = "settings-changed"
SHORTCUTS_CHANGED = "shortcuts-changed"
INPUT_PANEL_SHOW = "input-panel-show"
INPUT_PANEL_HIDE = "input-panel-hide"
INPUT_PANEL_SEARCH = "input-panel-search"
INPUT_PANEL_SELECT_INDEX = "input-panel-select-index"

Handler = Callable[[Any], Awaitable[None]]


class EventBus:
    """Named events with async listeners, delivered in subscription order."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def listen(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe ``handler`` and return a function that unsubscribes it."""
        self._handlers.setdefault(event, []).append(handler)

        def unlisten():
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unlisten

    async def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler(payload)
            except Exception as e:
                logger.error(f"Listener for {event} failed: {e}")

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))
