"""Query parsing, filtering and ordering of clip records, plus tag suggestions."""

import logging
import re
from typing import Iterable, List, Optional

from fat_clip.core.errors import BackendError
from fat_clip.models.schemas import ClipRecord, ContentType, SearchQuery

logger = logging.getLogger(__name__)

TAG_PREFIXES = ("tag:", "#")
TYPE_PREFIX = "type:"
SUGGESTION_LIMIT = 10


def parse_query(raw: str, content_type: Optional[str] = "all") -> SearchQuery:
    """Split raw input into free text, tag constraints and a content-type facet.

    ``tag:name`` and ``#name`` tokens become tag constraints, ``type:name``
    selects the facet; every other token is part of the free text.
    """
    text_parts: List[str] = []
    tags: List[str] = []
    facet = ContentType.parse(content_type)

    for token in (raw or "").split():
        lowered = token.lower()
        tag = _strip_tag_prefix(token)
        if tag is not None:
            if tag and tag.lower() not in (t.lower() for t in tags):
                tags.append(tag)
            continue
        if lowered.startswith(TYPE_PREFIX):
            parsed = ContentType.parse(token[len(TYPE_PREFIX):])
            if parsed is not None:
                facet = parsed
            continue
        text_parts.append(token)

    return SearchQuery(text=" ".join(text_parts), tags=tags, content_type=facet)


def _is_filter_token(token: str) -> bool:
    return _strip_tag_prefix(token) is not None or token.lower().startswith(TYPE_PREFIX)


def literal_text(raw: str) -> str:
    """Free text of ``raw`` as typed, with filter tokens cut out.

    Unlike ``parse_query`` the user's own spacing between words is kept.
    """
    raw = raw or ""
    pieces = []
    position = 0
    for match in re.finditer(r"(\S+)\s*", raw):
        if _is_filter_token(match.group(1)):
            pieces.append(raw[position:match.start()])
            position = match.end()
    pieces.append(raw[position:])
    return "".join(pieces).strip()


def combined_query(text: str, tags: Iterable[str] = ()) -> str:
    """Query string understood by the backend's search command."""
    terms = [text.strip()] if text and text.strip() else []
    terms.extend(f"tag:{tag}" for tag in tags)
    return " ".join(terms)


def matches(record: ClipRecord, query: SearchQuery) -> bool:
    if query.content_type is not None and record.content_type != query.content_type:
        return False

    record_tags = [tag.lower() for tag in record.tags]
    for tag in query.tags:
        if tag.lower() not in record_tags:
            return False

    if query.text:
        needle = query.text.lower()
        return (
            needle in record.content.lower()
            or needle in record.preview_text.lower()
            or any(needle in tag for tag in record_tags)
        )
    return True


def order_pinned_first(records: Iterable[ClipRecord]) -> List[ClipRecord]:
    """Pinned records first, each partition most recently used first.

    Applied locally even to backend results that claim to be ordered.
    """
    records = list(records)
    pinned = [r for r in records if r.pinned]
    unpinned = [r for r in records if not r.pinned]
    pinned.sort(key=lambda r: r.last_used_at, reverse=True)
    unpinned.sort(key=lambda r: r.last_used_at, reverse=True)
    return pinned + unpinned


def apply_facet(records: Iterable[ClipRecord], content_type: Optional[ContentType]) -> List[ClipRecord]:
    if content_type is None:
        return list(records)
    return [r for r in records if r.content_type == content_type]


def filter_records(records: Iterable[ClipRecord], query: SearchQuery) -> List[ClipRecord]:
    return order_pinned_first(r for r in records if matches(r, query))


def is_tag_query(raw: str) -> bool:
    return (raw or "").lower().startswith(TAG_PREFIXES)


def collect_tags(records: Iterable[ClipRecord]) -> List[str]:
    """Distinct tags in first-seen order."""
    seen: List[str] = []
    for record in records:
        for tag in record.tags:
            if tag not in seen:
                seen.append(tag)
    return seen


def rank_tags(all_tags: Iterable[str], prefix: str, limit: int = SUGGESTION_LIMIT) -> List[str]:
    """Tags starting with ``prefix`` first, then tags merely containing it."""
    needle = prefix.lower()
    starts = [t for t in all_tags if t.lower().startswith(needle)]
    contains = [t for t in all_tags if needle in t.lower() and t not in starts]
    return (starts + contains)[:limit]


class TagSuggester:
    """Suggestions shown while the search field holds a ``tag:``/``#`` query."""

    def __init__(self, backend):
        self.backend = backend
        self.all_tags: List[str] = []

    async def refresh(self) -> List[str]:
        try:
            self.all_tags = await self.backend.get_all_tags()
        except BackendError as e:
            logger.error(f"Failed to load tags: {e}")
        return self.all_tags

    async def suggest(self, raw: str) -> List[str]:
        if not is_tag_query(raw):
            return []

        lowered = raw.lower()
        rest = lowered[4:] if lowered.startswith("tag:") else lowered[1:]
        rest = rest.strip()
        if not rest:
            return [f"tag:{tag}" for tag in self.all_tags[:SUGGESTION_LIMIT]]

        try:
            found = await self.backend.search_tags(rest)
        except BackendError as e:
            logger.error(f"Failed to search tags: {e}")
            return []
        return [f"tag:{tag}" for tag in found[:SUGGESTION_LIMIT]]


def _strip_tag_prefix(token: str) -> Optional[str]:
    lowered = token.lower()
    for prefix in TAG_PREFIXES:
        if lowered.startswith(prefix):
            return token[len(prefix):]
    return None
