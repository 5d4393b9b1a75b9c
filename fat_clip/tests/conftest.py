"""Shared fixtures for the Fat Clip test suite."""

import io
import itertools
from datetime import datetime, timedelta

import pytest
from PIL import Image
from unittest.mock import AsyncMock

from fat_clip.core.host import Host
from fat_clip.models.schemas import ClipRecord, ContentType


@pytest.fixture
def png_bytes():
    """A 400x100 PNG image."""
    out = io.BytesIO()
    Image.new("RGB", (400, 100), color=(200, 30, 30)).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def make_record():
    """Factory for records with controllable timestamps.

    Without ``created_at`` each record is one minute older than the last,
    so default ordering is deterministic.
    """
    counter = itertools.count()
    base = datetime.now().astimezone().replace(hour=12, minute=0, second=0, microsecond=0)

    def factory(
        content="hello",
        *,
        pinned=False,
        tags=(),
        created_at=None,
        content_type=ContentType.PLAIN,
        metadata=None,
        clip_id=None,
    ):
        n = next(counter)
        return ClipRecord(
            id=clip_id or f"clip{n}",
            content_type=content_type,
            content=content,
            preview_text=content[:30],
            fingerprint=f"fp-{n}",
            tags=list(tags),
            pinned=pinned,
            created_at=created_at or base - timedelta(minutes=n),
            metadata=metadata or {},
        )

    return factory


@pytest.fixture
def seed():
    """Insert records straight into a MemoryBackend."""

    def seeder(backend, *records):
        for record in records:
            backend._clips[record.id] = record
            backend._issued_ids.add(record.id)
        return list(records)

    return seeder


@pytest.fixture
def host():
    """Host double with the main window hidden."""
    host = AsyncMock(spec=Host)
    host.is_main_window_visible.return_value = False
    return host
