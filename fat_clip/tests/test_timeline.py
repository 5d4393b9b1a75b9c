"""Tests for day grouping and timeline layouts."""

from datetime import date, datetime

import pytest

from fat_clip.core.timeline import (
    TimelineMode,
    active_day_key,
    build_layout,
    day_key,
    day_label,
    first_index_of_day,
    group_by_day,
)

TODAY = date(2024, 3, 15)


def local(day, hour=12):
    return datetime(2024, 3, day, hour).astimezone()


@pytest.fixture
def records(make_record):
    """Pinned record from the 15th first, then recency order."""
    return [
        make_record("pinned", pinned=True, created_at=local(15, 9)),
        make_record("a", created_at=local(14, 18)),
        make_record("b", created_at=local(14, 8)),
        make_record("c", created_at=local(13)),
    ]


class TestDayKeys:
    def test_day_key_uses_local_date(self):
        assert day_key(local(15, 0)) == "2024-03-15"
        assert day_key(local(15, 23)) == "2024-03-15"

    def test_labels(self):
        assert day_label("2024-03-15", TODAY) == "Today"
        assert day_label("2024-03-14", TODAY) == "Yesterday"
        assert day_label("2024-03-13", TODAY) == "2024-03-13"


class TestGrouping:
    def test_each_day_lands_in_one_group(self, records):
        groups = group_by_day(records, TODAY)

        assert [g.day_key for g in groups] == ["2024-03-15", "2024-03-14", "2024-03-13"]
        assert [g.label for g in groups] == ["Today", "Yesterday", "2024-03-13"]
        assert [[i.record.content for i in g.items] for g in groups] == [["pinned"], ["a", "b"], ["c"]]

    def test_flattened_groups_preserve_order(self, records):
        groups = group_by_day(records, TODAY)

        flat = [item.record for g in groups for item in g.items]
        assert flat == records
        assert [item.index for g in groups for item in g.items] == [0, 1, 2, 3]

    def test_same_day_split_by_other_days_stays_one_group(self, make_record):
        records = [
            make_record("x", created_at=local(10)),
            make_record("y", created_at=local(12)),
            make_record("z", created_at=local(10, 8)),
        ]

        groups = group_by_day(records, TODAY)

        assert [g.day_key for g in groups] == ["2024-03-10", "2024-03-12"]
        assert [i.index for i in groups[0].items] == [0, 2]

    def test_empty(self):
        assert group_by_day([], TODAY) == []

    def test_active_day(self, records):
        groups = group_by_day(records, TODAY)

        assert active_day_key(groups, 2) == "2024-03-14"
        assert active_day_key(groups, 99) == "2024-03-15"
        assert active_day_key([], 0) is None

    def test_first_index_of_day(self, records):
        groups = group_by_day(records, TODAY)

        assert first_index_of_day(groups, "2024-03-14") == 1
        assert first_index_of_day(groups, "2023-01-01") is None


class TestLayouts:
    def test_standard_has_side_index(self, records):
        layout = build_layout(records, "standard", selected_index=3, today=TODAY)

        assert layout.mode == TimelineMode.STANDARD
        assert [(e.day_key, e.count, e.active) for e in layout.side_index] == [
            ("2024-03-15", 1, False),
            ("2024-03-14", 2, False),
            ("2024-03-13", 1, True),
        ]
        assert layout.active_day == "2024-03-13"
        assert layout.connectors == []

    def test_compact_has_connectors(self, records):
        layout = build_layout(records, TimelineMode.COMPACT, today=TODAY)

        assert layout.side_index == []
        assert layout.connectors == [(False, True), (True, True), (True, False)]

    def test_off_is_flat(self, records):
        layout = build_layout(records, "off", today=TODAY)

        assert layout.groups == []
        assert [i.record for i in layout.items] == records

    def test_unknown_mode_falls_back_to_standard(self):
        assert TimelineMode.parse("bogus") == TimelineMode.STANDARD
