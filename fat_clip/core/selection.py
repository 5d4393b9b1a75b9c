"""Keyboard-driven selection over the filtered clip list.

The main list's state is an explicit ``ViewState`` value. ``reduce`` maps a
key event to the next state plus the side effects the session must run, and
``MainListSession`` runs them against the backend.
"""

import logging
from enum import Enum, IntEnum
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict

from fat_clip.core.classifier import plain_projection, truncate
from fat_clip.core.config import Settings
from fat_clip.core.errors import BackendError
from fat_clip.core.history import HistoryStore
from fat_clip.core.search import TagSuggester, parse_query
from fat_clip.core.shortcuts import match_action, matches_shortcut
from fat_clip.core.timeline import TimelineLayout, TimelineMode, build_layout, first_index_of_day
from fat_clip.models.schemas import (
    ClipRecord,
    ContentType,
    KeyEvent,
    SearchQuery,
    SelectionState,
    ShortcutsConfig,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIGITS = "123456789"


def clamp_index(index: int, length: int) -> int:
    if length <= 0:
        return 0
    return max(0, min(index, length - 1))


def digit_value(event: KeyEvent) -> Optional[int]:
    if len(event.key) == 1 and event.key in DIGITS:
        return int(event.key)
    return None


class IndexedSelection(Generic[T]):
    """Clamped, digit-addressable selection over a list that may be replaced.

    ``key`` extracts the identity used for the expanded item.
    """

    def __init__(
        self,
        items: Sequence[T] = (),
        selected_index: int = 0,
        expanded_id: Optional[str] = None,
        key: Callable[[T], str] = lambda item: item.id,
    ):
        self.key = key
        self._items: List[T] = []
        self.selected_index = selected_index
        self.expanded_id = expanded_id
        self.replace(items)

    @property
    def items(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def replace(self, items: Sequence[T]):
        """Swap in a new list, re-clamping the index and dropping a stale expansion."""
        self._items = list(items)
        self.selected_index = clamp_index(self.selected_index, len(self._items))
        if self.expanded_id is not None and not any(
            self.key(item) == self.expanded_id for item in self._items
        ):
            self.expanded_id = None

    def move(self, delta: int):
        if self._items:
            self.selected_index = clamp_index(self.selected_index + delta, len(self._items))

    def select(self, index: int) -> Optional[T]:
        if not 0 <= index < len(self._items):
            return None
        self.selected_index = index
        return self._items[index]

    def at_digit(self, digit: int) -> Optional[T]:
        """Item shown as number ``digit`` (1-9), if there is one."""
        if 1 <= digit <= 9 and digit <= len(self._items):
            return self._items[digit - 1]
        return None

    def toggle_expanded(self, item: T):
        item_id = self.key(item)
        self.expanded_id = None if self.expanded_id == item_id else item_id

    def collapse(self):
        self.expanded_id = None

    @property
    def current(self) -> Optional[T]:
        if not self._items:
            return None
        return self._items[self.selected_index]

    @property
    def state(self) -> SelectionState:
        return SelectionState(selected_index=self.selected_index, expanded_id=self.expanded_id)


class Interrupt(IntEnum):
    """Things Escape can dismiss, highest priority first."""

    TAG_DIALOG = 5
    SUGGESTIONS = 4
    EXPANDED = 3
    QUERY = 2
    WINDOW = 1


class ActionKind(str, Enum):
    FOCUS_SEARCH = "focus_search"
    CLOSE_TAG_DIALOG = "close_tag_dialog"
    CLOSE_SUGGESTIONS = "close_suggestions"
    CLEAR_FILTERS = "clear_filters"
    HIDE_WINDOW = "hide_window"
    COPY = "copy"
    TOGGLE_PIN = "toggle_pin"
    DELETE = "delete"
    OPEN_TAG_DIALOG = "open_tag_dialog"


class Action(BaseModel):
    kind: ActionKind
    record: Optional[ClipRecord] = None


class ViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_index: int = 0
    expanded_id: Optional[str] = None
    search_focused: bool = False
    tag_dialog_id: Optional[str] = None
    suggestions_open: bool = False
    query: str = ""
    tag_filters: Tuple[str, ...] = ()
    content_type: Optional[ContentType] = None

    @property
    def tag_dialog_open(self) -> bool:
        return self.tag_dialog_id is not None

    @property
    def overlay_open(self) -> bool:
        return self.tag_dialog_open or self.suggestions_open

    @property
    def has_filters(self) -> bool:
        return bool(self.query or self.tag_filters or self.content_type is not None)

    def interrupts(self) -> List[Interrupt]:
        active = [Interrupt.WINDOW]
        if self.tag_dialog_open:
            active.append(Interrupt.TAG_DIALOG)
        if self.suggestions_open:
            active.append(Interrupt.SUGGESTIONS)
        if self.expanded_id is not None:
            active.append(Interrupt.EXPANDED)
        if self.has_filters:
            active.append(Interrupt.QUERY)
        return sorted(active, reverse=True)


def escape_target(state: ViewState) -> Interrupt:
    return state.interrupts()[0]


def with_items(state: ViewState, items: Sequence[ClipRecord]) -> ViewState:
    """State re-clamped against a freshly loaded list."""
    selection = IndexedSelection(items, state.selected_index, state.expanded_id)
    return state.model_copy(
        update={
            "selected_index": selection.selected_index,
            "expanded_id": selection.expanded_id,
        }
    )


def _escape(state: ViewState) -> Tuple[ViewState, List[Action]]:
    target = escape_target(state)
    if target == Interrupt.TAG_DIALOG:
        return state.model_copy(update={"tag_dialog_id": None}), [Action(kind=ActionKind.CLOSE_TAG_DIALOG)]
    if target == Interrupt.SUGGESTIONS:
        return state.model_copy(update={"suggestions_open": False}), [Action(kind=ActionKind.CLOSE_SUGGESTIONS)]
    if target == Interrupt.EXPANDED:
        return state.model_copy(update={"expanded_id": None}), []
    if target == Interrupt.QUERY:
        cleared = state.model_copy(
            update={"query": "", "tag_filters": (), "content_type": None, "selected_index": 0}
        )
        return cleared, [Action(kind=ActionKind.CLEAR_FILTERS)]
    return state, [Action(kind=ActionKind.HIDE_WINDOW)]


def reduce(
    state: ViewState,
    event: KeyEvent,
    items: Sequence[ClipRecord],
    shortcuts: Optional[ShortcutsConfig] = None,
) -> Tuple[ViewState, List[Action]]:
    """Next state and the side effects for one key press. Never mutates ``state``."""
    shortcuts = shortcuts or ShortcutsConfig()
    state = with_items(state, items)

    if not state.search_focused and matches_shortcut(event, shortcuts.focus_search):
        return state.model_copy(update={"search_focused": True}), [Action(kind=ActionKind.FOCUS_SEARCH)]

    if matches_shortcut(event, shortcuts.close_window):
        return _escape(state)

    if state.overlay_open:
        return state, []

    selection = IndexedSelection(items, state.selected_index, state.expanded_id)
    actions: List[Action] = []

    if matches_shortcut(event, shortcuts.navigate_up):
        selection.move(-1)
    elif matches_shortcut(event, shortcuts.navigate_down):
        selection.move(1)
    elif matches_shortcut(event, shortcuts.copy_selected):
        record = selection.current
        if record is not None:
            actions.append(Action(kind=ActionKind.COPY, record=record))
            selection.toggle_expanded(record)
    elif digit_value(event) is not None and not (event.ctrl or event.alt or event.meta):
        digit = digit_value(event)
        record = selection.at_digit(digit)
        if record is not None:
            actions.append(Action(kind=ActionKind.COPY, record=record))
            selection.select(digit - 1)
            selection.toggle_expanded(record)
    elif not state.search_focused:
        action = match_action(event, shortcuts)
        record = selection.current
        if record is None:
            return state, []
        if action == "expand_item":
            selection.toggle_expanded(record)
        elif action == "pin_selected":
            actions.append(Action(kind=ActionKind.TOGGLE_PIN, record=record))
        elif action == "delete_selected":
            actions.append(Action(kind=ActionKind.DELETE, record=record))
        elif action == "open_tags":
            actions.append(Action(kind=ActionKind.OPEN_TAG_DIALOG, record=record))
            return state.model_copy(update={"tag_dialog_id": record.id}), actions

    next_state = state.model_copy(
        update={"selected_index": selection.selected_index, "expanded_id": selection.expanded_id}
    )
    return next_state, actions


class MainListSession:
    """The history window: filters, selection, tag editing and copy-back."""

    def __init__(self, backend, host, settings: Optional[Settings] = None):
        self.backend = backend
        self.host = host
        self.settings = settings or Settings()

        self.store = HistoryStore(backend, limit=self.settings.page_size)
        self.suggester = TagSuggester(backend)
        self.state = ViewState()
        self.suggestions: List[str] = []
        self.editing_tags: List[str] = []
        self.timeline_mode = TimelineMode.parse(self.settings.timeline_mode)
        self.shortcuts = self.settings.shortcuts

    @property
    def items(self) -> List[ClipRecord]:
        return self.store.records

    @property
    def selected(self) -> Optional[ClipRecord]:
        items = self.items
        return items[self.state.selected_index] if items else None

    @property
    def search_query(self) -> SearchQuery:
        content_type = self.state.content_type.value if self.state.content_type else "all"
        query = parse_query(self.state.query, content_type)
        tags = list(query.tags)
        for tag in self.state.tag_filters:
            if tag.lower() not in (t.lower() for t in tags):
                tags.append(tag)
        return query.model_copy(update={"tags": tags})

    async def reload(self) -> bool:
        ok = await self.store.load(self.search_query)
        self.state = with_items(self.state, self.items)
        return ok

    async def refresh_tags(self) -> List[str]:
        return await self.suggester.refresh()

    async def handle_key(self, event: KeyEvent) -> List[Action]:
        self.state, actions = reduce(self.state, event, self.items, self.shortcuts)
        for action in actions:
            await self._run(action)
        return actions

    async def _run(self, action: Action):
        if action.kind == ActionKind.COPY:
            await self.copy(action.record)
        elif action.kind == ActionKind.TOGGLE_PIN:
            await self.toggle_pin(action.record)
        elif action.kind == ActionKind.DELETE:
            await self.delete(action.record)
        elif action.kind == ActionKind.OPEN_TAG_DIALOG:
            self.editing_tags = list(action.record.tags)
        elif action.kind == ActionKind.CLOSE_TAG_DIALOG:
            self.editing_tags = []
        elif action.kind == ActionKind.CLOSE_SUGGESTIONS:
            self.suggestions = []
        elif action.kind == ActionKind.CLEAR_FILTERS:
            self.suggestions = []
            await self.reload()
        elif action.kind == ActionKind.HIDE_WINDOW:
            await self.host.hide_main_window()

    async def copy(self, record: ClipRecord) -> bool:
        try:
            if record.content_type == ContentType.IMAGE:
                data = await self.store.image_data(record.id)
                await self.backend.write_image_to_clipboard(data)
            else:
                await self.backend.write_to_clipboard(plain_projection(record))
        except BackendError as e:
            logger.error(f"Failed to copy clip {record.id}: {e}")
            await self.host.show_toast(f"Failed to copy: {e}", error=True)
            return False

        try:
            await self.backend.mark_clip_used(record.id)
        except BackendError as e:
            logger.warning(f"Could not update last use of clip {record.id}: {e}")

        if await self.host.is_main_window_visible():
            await self.host.show_toast("Copied to clipboard")
        elif self.settings.show_notifications:
            await self.host.show_notification(
                "Copied to clipboard", truncate(record.preview_text or plain_projection(record))
            )
        await self.reload()
        return True

    async def toggle_pin(self, record: ClipRecord) -> bool:
        try:
            await self.backend.toggle_clip_pin(record.id, not record.pinned)
        except BackendError as e:
            logger.error(f"Failed to toggle pin on {record.id}: {e}")
            await self.host.show_toast(f"Failed to update pin: {e}", error=True)
            return False
        await self.reload()
        return True

    async def delete(self, record: ClipRecord) -> bool:
        try:
            await self.backend.delete_clip(record.id)
        except BackendError as e:
            logger.error(f"Failed to delete clip {record.id}: {e}")
            await self.host.show_toast(f"Failed to delete: {e}", error=True)
            return False
        await self.store.forget_media(record.id)
        await self.reload()
        return True

    def open_tag_dialog(self, record: ClipRecord):
        self.state = self.state.model_copy(update={"tag_dialog_id": record.id})
        self.editing_tags = list(record.tags)

    def add_editing_tag(self, tag: str) -> bool:
        tag = tag.strip()
        if not tag or tag in self.editing_tags:
            return False
        self.editing_tags.append(tag)
        return True

    def remove_editing_tag(self, tag: str):
        self.editing_tags = [t for t in self.editing_tags if t != tag]

    def close_tag_dialog(self):
        self.state = self.state.model_copy(update={"tag_dialog_id": None})
        self.editing_tags = []

    async def save_tags(self) -> bool:
        clip_id = self.state.tag_dialog_id
        if clip_id is None:
            return False
        try:
            await self.backend.update_clip_tags(clip_id, list(self.editing_tags))
        except BackendError as e:
            logger.error(f"Failed to save tags for {clip_id}: {e}")
            await self.host.show_toast(f"Failed to save tags: {e}", error=True)
            return False

        self.close_tag_dialog()
        await self.reload()
        await self.suggester.refresh()
        return True

    async def delete_tag(self, tag: str) -> int:
        """Strip ``tag`` from every clip carrying it; returns how many changed."""
        try:
            tagged = await self.backend.search_clips(f"tag:{tag}", self.settings.max_history_items)
            for record in tagged:
                await self.backend.update_clip_tags(record.id, [t for t in record.tags if t != tag])
        except BackendError as e:
            logger.error(f"Failed to delete tag {tag}: {e}")
            await self.host.show_toast(f"Failed to delete tag: {e}", error=True)
            return 0

        await self.reload()
        await self.suggester.refresh()
        return len(tagged)

    async def set_query(self, raw: str) -> bool:
        self.suggestions = await self.suggester.suggest(raw)
        self.state = self.state.model_copy(
            update={"query": raw, "suggestions_open": bool(self.suggestions), "selected_index": 0}
        )
        return await self.reload()

    async def select_suggestion(self, suggestion: str) -> bool:
        tag = suggestion[4:] if suggestion.lower().startswith("tag:") else suggestion
        tags = self.state.tag_filters
        if tag and tag not in tags:
            tags = tags + (tag,)
        self.suggestions = []
        self.state = self.state.model_copy(
            update={"query": "", "tag_filters": tags, "suggestions_open": False, "selected_index": 0}
        )
        return await self.reload()

    async def toggle_tag_filter(self, tag: str) -> bool:
        tags = self.state.tag_filters
        tags = tuple(t for t in tags if t != tag) if tag in tags else tags + (tag,)
        self.state = self.state.model_copy(update={"tag_filters": tags, "selected_index": 0})
        return await self.reload()

    async def set_content_type(self, name: Optional[str]) -> bool:
        self.state = self.state.model_copy(
            update={"content_type": ContentType.parse(name), "selected_index": 0}
        )
        return await self.reload()

    async def clear_filters(self) -> bool:
        self.suggestions = []
        self.state = self.state.model_copy(
            update={
                "query": "",
                "tag_filters": (),
                "content_type": None,
                "suggestions_open": False,
                "selected_index": 0,
            }
        )
        return await self.reload()

    def blur_search(self):
        self.state = self.state.model_copy(update={"search_focused": False})

    def set_timeline_mode(self, mode):
        self.timeline_mode = TimelineMode.parse(mode)

    def layout(self, today=None) -> TimelineLayout:
        return build_layout(self.items, self.timeline_mode, self.state.selected_index, today)

    def jump_to_day(self, key: str) -> Optional[int]:
        index = first_index_of_day(self.layout().groups, key)
        if index is not None:
            self.state = self.state.model_copy(update={"selected_index": index})
        return index

    def apply_settings(self, settings: Settings):
        self.settings = settings
        self.shortcuts = settings.shortcuts
        self.store.limit = settings.page_size
        self.set_timeline_mode(settings.timeline_mode)
