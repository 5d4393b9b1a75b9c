"""Data models for the Fat Clip session engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContentType(str, Enum):
    """Kinds of clipboard content a clip can hold."""

    PLAIN = "Plain"
    RICH = "Rich"
    IMAGE = "Image"
    FILE = "File"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ContentType"]:
        """Resolve a facet name case-insensitively; ``all`` and unknown names give None."""
        if not value:
            return None
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


# Metadata keys each content type may carry
METADATA_FIELDS = {
    ContentType.PLAIN: frozenset(),
    ContentType.RICH: frozenset({"has_html", "has_rtf", "html_preview"}),
    ContentType.IMAGE: frozenset({"width", "height", "format", "size_bytes"}),
    ContentType.FILE: frozenset({"file_paths", "total_size_bytes"}),
}


class ClipRecord(BaseModel):
    """A captured clipboard snapshot.

    Records are immutable once built; pin and tag changes produce a new
    record through the backend.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    content_type: ContentType = ContentType.PLAIN
    content: str
    preview_text: str = ""
    fingerprint: str = ""
    tags: List[str] = Field(default_factory=list)
    source_app: str = "Unknown"
    pinned: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    last_used_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_last_used(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("last_used_at") is None:
            data = dict(data)
            if data.get("created_at") is None:
                data["created_at"] = utc_now()
            data["last_used_at"] = data["created_at"]
        return data

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: List[str]) -> List[str]:
        unique: List[str] = []
        for tag in tags:
            tag = str(tag).strip()
            if tag and tag not in unique:
                unique.append(tag)
        return unique

    @model_validator(mode="after")
    def _check_metadata(self) -> "ClipRecord":
        illegal = set(self.metadata) - METADATA_FIELDS[self.content_type]
        if illegal:
            raise ValueError(
                f"metadata {sorted(illegal)} not allowed for {self.content_type.value} clips"
            )
        return self


class TextPayload(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class RichPayload(BaseModel):
    kind: Literal["rich"] = "rich"
    html: Optional[str] = None
    rtf: Optional[str] = None
    plain: str = ""


class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    data: bytes
    width: int = 0
    height: int = 0
    format: str = "png"


class FilePayload(BaseModel):
    kind: Literal["files"] = "files"
    paths: List[str]


CapturedPayload = Annotated[
    Union[TextPayload, RichPayload, ImagePayload, FilePayload],
    Field(discriminator="kind"),
]


class SearchQuery(BaseModel):
    """Parsed form of what the user typed into a search field."""

    text: str = ""
    tags: List[str] = Field(default_factory=list)
    content_type: Optional[ContentType] = None

    @property
    def is_unfiltered(self) -> bool:
        return not self.text and not self.tags and self.content_type is None


class SelectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_index: int = 0
    expanded_id: Optional[str] = None


class TimelineItem(BaseModel):
    index: int
    record: ClipRecord


class TimelineGroup(BaseModel):
    day_key: str
    label: str
    items: List[TimelineItem] = Field(default_factory=list)


class CleanupRequest(BaseModel):
    """Bulk eviction request: a date range, a cutoff date or an age."""

    mode: Literal["range", "before", "older_than"]
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    before_date: Optional[str] = None
    older_than_days: Optional[int] = None


class KeyEvent(BaseModel):
    """A key press as delivered by the UI layer."""

    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    meta: bool = False


class ShortcutConfig(BaseModel):
    """A key plus the four modifier flags."""

    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    meta: bool = False


class ShortcutsConfig(BaseModel):
    """The ten named bindings of the main window."""

    toggle_window: ShortcutConfig = ShortcutConfig(key="V", ctrl=True, shift=True)
    focus_search: ShortcutConfig = ShortcutConfig(key="/")
    navigate_up: ShortcutConfig = ShortcutConfig(key="ArrowUp")
    navigate_down: ShortcutConfig = ShortcutConfig(key="ArrowDown")
    expand_item: ShortcutConfig = ShortcutConfig(key="Space")
    copy_selected: ShortcutConfig = ShortcutConfig(key="Enter")
    pin_selected: ShortcutConfig = ShortcutConfig(key="P")
    delete_selected: ShortcutConfig = ShortcutConfig(key="Delete")
    open_tags: ShortcutConfig = ShortcutConfig(key="T")
    close_window: ShortcutConfig = ShortcutConfig(key="Escape")
