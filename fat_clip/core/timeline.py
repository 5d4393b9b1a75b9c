"""Day buckets over an ordered clip list, and the three display layouts."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from fat_clip.models.schemas import ClipRecord, TimelineGroup, TimelineItem


class TimelineMode(str, Enum):
    STANDARD = "standard"
    COMPACT = "compact"
    OFF = "off"

    @classmethod
    def parse(cls, value) -> "TimelineMode":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.STANDARD


class DayIndexEntry(BaseModel):
    """One row of the side index shown next to the grouped list."""

    day_key: str
    label: str
    count: int
    active: bool = False


class TimelineLayout(BaseModel):
    mode: TimelineMode
    items: List[TimelineItem] = Field(default_factory=list)
    groups: List[TimelineGroup] = Field(default_factory=list)
    side_index: List[DayIndexEntry] = Field(default_factory=list)
    # (line_before, line_after) per group in compact mode
    connectors: List[Tuple[bool, bool]] = Field(default_factory=list)
    active_day: Optional[str] = None


def day_key(moment: datetime) -> str:
    """Local calendar date of a timestamp as ``YYYY-MM-DD``."""
    return moment.astimezone().strftime("%Y-%m-%d")


def day_label(key: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    if key == today.isoformat():
        return "Today"
    if key == (today - timedelta(days=1)).isoformat():
        return "Yesterday"
    return key


def group_by_day(records: Sequence[ClipRecord], today: Optional[date] = None) -> List[TimelineGroup]:
    """Bucket records by creation day without reordering them.

    Groups appear in the order their day is first seen, so pinned records
    from an older day pull that day's bucket up with them. Each item keeps
    its index in the flat list for selection and digit addressing.
    """
    groups: Dict[str, TimelineGroup] = {}
    for index, record in enumerate(records):
        key = day_key(record.created_at)
        if key not in groups:
            groups[key] = TimelineGroup(day_key=key, label=day_label(key, today))
        groups[key].items.append(TimelineItem(index=index, record=record))
    return list(groups.values())


def active_day_key(groups: Sequence[TimelineGroup], selected_index: int) -> Optional[str]:
    for group in groups:
        if any(item.index == selected_index for item in group.items):
            return group.day_key
    return groups[0].day_key if groups else None


def first_index_of_day(groups: Sequence[TimelineGroup], key: str) -> Optional[int]:
    for group in groups:
        if group.day_key == key and group.items:
            return group.items[0].index
    return None


def build_layout(
    records: Sequence[ClipRecord],
    mode,
    selected_index: int = 0,
    today: Optional[date] = None,
) -> TimelineLayout:
    mode = TimelineMode.parse(mode.value if isinstance(mode, TimelineMode) else mode)
    items = [TimelineItem(index=i, record=r) for i, r in enumerate(records)]

    if mode == TimelineMode.OFF:
        return TimelineLayout(mode=mode, items=items)

    groups = group_by_day(records, today)
    active = active_day_key(groups, selected_index)
    layout = TimelineLayout(mode=mode, items=items, groups=groups, active_day=active)

    if mode == TimelineMode.STANDARD:
        layout.side_index = [
            DayIndexEntry(
                day_key=g.day_key,
                label=g.label,
                count=len(g.items),
                active=g.day_key == active,
            )
            for g in groups
        ]
    else:
        last = len(groups) - 1
        layout.connectors = [(i > 0, i < last) for i in range(len(groups))]

    return layout
