"""Quick-paste overlay opened by typing the trigger into any text field."""

import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from fat_clip.core.classifier import plain_projection, truncate
from fat_clip.core.config import Settings
from fat_clip.core.errors import BackendError
from fat_clip.core.search import filter_records, literal_text, parse_query
from fat_clip.core.selection import IndexedSelection, digit_value
from fat_clip.models.schemas import ClipRecord, KeyEvent

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 9
NOTIFICATION_PREVIEW_LENGTH = 32


class InputPanelSession(BaseModel):
    """State of one open panel; discarded when the panel closes."""

    trigger_length: int = 2
    query: str = ""
    selection_modifier: Literal["ctrl", "alt"] = "ctrl"
    candidates: List[ClipRecord] = Field(default_factory=list)

    @field_validator("selection_modifier", mode="before")
    @classmethod
    def _normalize_modifier(cls, value):
        return "alt" if str(value or "").strip().lower() == "alt" else "ctrl"


def filter_candidates(records: List[ClipRecord], query: str) -> List[ClipRecord]:
    """Client-side filter over the loaded page, capped at the digit-addressable count."""
    parsed = parse_query(query).model_copy(update={"text": literal_text(query)})
    return filter_records(records, parsed)[:MAX_CANDIDATES]


class InputPanelController:
    """Drives the panel: load, filter as the user types, paste on selection."""

    def __init__(self, backend, host, settings: Optional[Settings] = None):
        self.backend = backend
        self.host = host
        self.settings = settings or Settings()
        self.session: Optional[InputPanelSession] = None
        self.selection: IndexedSelection = IndexedSelection()
        self._snapshot: List[ClipRecord] = []
        # Bumped whenever a panel opens or closes
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self.session is not None

    @property
    def candidates(self) -> List[ClipRecord]:
        return list(self.session.candidates) if self.session else []

    async def show(
        self,
        query: str = "",
        trigger_length: Optional[int] = None,
        selection_modifier: Optional[str] = None,
    ) -> InputPanelSession:
        if trigger_length is None:
            trigger_length = len(self.settings.input_panel_trigger)
        self.session = InputPanelSession(
            trigger_length=trigger_length,
            query=query,
            selection_modifier=selection_modifier or self.settings.input_panel_selection_modifier,
        )
        self.selection = IndexedSelection()
        self._snapshot = []
        self._generation += 1
        await self.reload()
        return self.session

    async def reload(self):
        """Refetch the first page, e.g. after the clipboard changed."""
        if self.session is None:
            return
        generation = self._generation
        try:
            records = await self.backend.get_recent_clips(self.settings.page_size)
        except BackendError as e:
            logger.error(f"Failed to load clips for input panel: {e}")
            return
        if self._generation == generation:
            self._snapshot = records
            self._refilter()

    def update_query(self, query: str):
        if self.session is None:
            return
        self.session = self.session.model_copy(update={"query": query})
        self._refilter()

    def _refilter(self):
        candidates = filter_candidates(self._snapshot, self.session.query)
        self.session = self.session.model_copy(update={"candidates": candidates})
        self.selection.replace(candidates)

    async def handle_key(self, event: KeyEvent) -> bool:
        if self.session is None:
            return False

        if event.key == "Escape":
            await self.dismiss()
            return True

        digit = digit_value(event)
        modifier_held = event.alt if self.session.selection_modifier == "alt" else event.ctrl
        if digit is not None and modifier_held:
            await self.select_index(digit - 1)
            return True
        return False

    async def select_index(self, index: int, search_len: Optional[int] = None) -> bool:
        if self.session is None:
            return False
        record = self.selection.at_digit(index + 1)
        if record is None:
            return False
        self.selection.select(index)
        return await self.commit(record, search_len)

    async def commit(self, record: ClipRecord, search_len: Optional[int] = None) -> bool:
        """Replace the typed trigger and query with the clip's text.

        The panel is torn down only if the session that started the commit
        is still the open one.
        """
        session = self.session
        if session is None:
            return False
        generation = self._generation
        if search_len is None:
            search_len = len(session.query)

        try:
            await self.backend.paste_and_cleanup(
                plain_projection(record), session.trigger_length, search_len
            )
        except BackendError as e:
            logger.error(f"Paste failed for clip {record.id}: {e}")
            await self.host.show_toast(f"Failed to paste: {e}", error=True)
            return False

        try:
            await self.backend.mark_clip_used(record.id)
        except BackendError as e:
            logger.warning(f"Could not update last use of clip {record.id}: {e}")

        if self._generation == generation:
            self.hide()
            await self.host.hide_input_panel()

        if self.settings.show_notifications and not await self.host.is_main_window_visible():
            preview = truncate(plain_projection(record), NOTIFICATION_PREVIEW_LENGTH)
            await self.host.show_notification("Fat Clip", f"Switched to: {preview}")
        return True

    async def dismiss(self):
        self.hide()
        await self.host.hide_input_panel()

    def hide(self):
        self.session = None
        self._generation += 1
        self.selection = IndexedSelection()
        self._snapshot = []
