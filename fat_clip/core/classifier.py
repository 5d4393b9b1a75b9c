"""Turns raw clipboard payloads into clip records.

Classification is deterministic apart from the assigned id and timestamps,
and never raises: anything it cannot make sense of is kept as plain text.
"""

import hashlib
import html
import io
import json
import logging
import os
import re
import uuid
from datetime import datetime
from typing import Any, List, Optional, Union

from PIL import Image
from pydantic import TypeAdapter, ValidationError

from fat_clip.models.schemas import (
    CapturedPayload,
    ClipRecord,
    ContentType,
    FilePayload,
    ImagePayload,
    RichPayload,
    TextPayload,
    utc_now,
)

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 30
HTML_PREVIEW_LENGTH = 100
THUMBNAIL_SIZE = 200

Payload = Union[TextPayload, RichPayload, ImagePayload, FilePayload]

_payload_adapter = TypeAdapter(CapturedPayload)
_TAG_RE = re.compile(r"<[^>]+>")


def truncate(text: str, length: int = PREVIEW_LENGTH) -> str:
    return text[:length] + "..." if len(text) > length else text


def new_clip_id() -> str:
    return uuid.uuid4().hex[:16]


def fingerprint(payload: Payload) -> str:
    """Content hash used to recognise a clip that was captured before."""
    if isinstance(payload, ImagePayload):
        data = payload.data
    elif isinstance(payload, RichPayload):
        data = f"{payload.html or ''}{payload.rtf or ''}{payload.plain}".encode()
    elif isinstance(payload, FilePayload):
        data = "\n".join(payload.paths).encode()
    else:
        data = payload.text.encode()
    return hashlib.sha256(data).hexdigest()


def coerce_payload(raw: Any) -> Payload:
    """Normalise whatever the clipboard layer handed over into a payload model."""
    if isinstance(raw, (TextPayload, RichPayload, ImagePayload, FilePayload)):
        return raw
    if isinstance(raw, str):
        return TextPayload(text=raw)
    if isinstance(raw, dict):
        if raw.get("kind") == "rich" and isinstance(raw.get("content"), str):
            return _rich_from_serialized(raw["content"])
        try:
            return _payload_adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning(f"Malformed clipboard payload, keeping as text: {e.error_count()} errors")
            return TextPayload(text=_raw_text(raw))
    return TextPayload(text=_raw_text(raw))


def classify(
    payload: Any,
    *,
    now: Optional[datetime] = None,
    source_app: str = "Unknown",
    clip_id: Optional[str] = None,
) -> ClipRecord:
    """Build the record shell (type, preview, metadata) for a captured payload."""
    now = now or utc_now()
    clip_id = clip_id or new_clip_id()

    try:
        parsed = coerce_payload(payload)
        if isinstance(parsed, RichPayload):
            return _classify_rich(parsed, clip_id, now, source_app)
        if isinstance(parsed, ImagePayload):
            return _classify_image(parsed, clip_id, now, source_app)
        if isinstance(parsed, FilePayload):
            return _classify_files(parsed, clip_id, now, source_app)
        return _plain_record(parsed.text, clip_id, now, source_app)
    except Exception as e:
        logger.warning(f"Classification failed, falling back to plain text: {e}")
        return _plain_record(_raw_text(payload), clip_id, now, source_app)


def parse_rich_content(content: str) -> dict:
    """Decode a stored rich clip; raises ValueError when it is not structured."""
    parsed = json.loads(content)
    if not isinstance(parsed, dict):
        raise ValueError("rich content must be an object")
    return parsed


def parse_file_content(content: str) -> List[str]:
    try:
        paths = json.loads(content)
        if isinstance(paths, list):
            return [str(p) for p in paths]
    except ValueError:
        pass
    return [line for line in content.split("\n") if line]


def plain_projection(record: ClipRecord) -> str:
    """Text form of a record, as written to the clipboard or pasted."""
    if record.content_type == ContentType.RICH:
        try:
            parsed = parse_rich_content(record.content)
        except ValueError:
            return record.content
        return parsed.get("plain") or strip_html(parsed.get("html") or "")
    if record.content_type == ContentType.FILE:
        return "\n".join(parse_file_content(record.content))
    if record.content_type == ContentType.IMAGE:
        return record.preview_text
    return record.content


def strip_html(markup: str) -> str:
    return html.unescape(_TAG_RE.sub("", markup)).strip()


def file_name(path: str) -> str:
    # Handles both Windows and Unix separators
    return re.split(r"[\\/]", path)[-1] or path


def image_size(data: bytes) -> tuple:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (OSError, ValueError):
        return (0, 0)


def make_thumbnail(data: bytes, max_size: int = THUMBNAIL_SIZE) -> bytes:
    """PNG no larger than ``max_size`` on its longest side; original bytes on failure."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.thumbnail((max_size, max_size))
            out = io.BytesIO()
            image.save(out, format="PNG")
            return out.getvalue()
    except (OSError, ValueError) as e:
        logger.warning(f"Thumbnail generation failed: {e}")
        return data


def _rich_from_serialized(content: str) -> Payload:
    try:
        parsed = parse_rich_content(content)
        return RichPayload(
            html=parsed.get("html"),
            rtf=parsed.get("rtf"),
            plain=parsed.get("plain") or "",
        )
    except (ValueError, ValidationError):
        return TextPayload(text=content)


def _raw_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    if isinstance(raw, dict):
        for key in ("text", "plain", "content"):
            if isinstance(raw.get(key), str):
                return raw[key]
        return json.dumps(raw, default=str)
    return str(raw)


def _plain_record(text: str, clip_id: str, now: datetime, source_app: str) -> ClipRecord:
    return ClipRecord(
        id=clip_id,
        content_type=ContentType.PLAIN,
        content=text,
        preview_text=truncate(text),
        fingerprint=fingerprint(TextPayload(text=text)),
        source_app=source_app,
        created_at=now,
    )


def _classify_rich(
    payload: RichPayload, clip_id: str, now: datetime, source_app: str
) -> ClipRecord:
    plain = payload.plain or strip_html(payload.html or "")
    if not payload.html and not payload.rtf:
        return _plain_record(plain, clip_id, now, source_app)

    content = json.dumps(
        {"html": payload.html, "rtf": payload.rtf, "plain": plain},
        ensure_ascii=False,
    )
    metadata = {"has_html": payload.html is not None, "has_rtf": payload.rtf is not None}
    if payload.html:
        metadata["html_preview"] = truncate(payload.html, HTML_PREVIEW_LENGTH)

    return ClipRecord(
        id=clip_id,
        content_type=ContentType.RICH,
        content=content,
        preview_text=f"[Rich Text] {truncate(plain)}",
        fingerprint=fingerprint(payload),
        source_app=source_app,
        created_at=now,
        metadata=metadata,
    )


def _classify_image(
    payload: ImagePayload, clip_id: str, now: datetime, source_app: str
) -> ClipRecord:
    if not payload.data:
        return _plain_record("", clip_id, now, source_app)

    width, height = payload.width, payload.height
    if width <= 0 or height <= 0:
        width, height = image_size(payload.data)

    size_bytes = len(payload.data)
    digest = fingerprint(payload)
    return ClipRecord(
        id=clip_id,
        content_type=ContentType.IMAGE,
        content=digest,
        preview_text=f"[Image] {width}x{height}px ({size_bytes / 1024:.1f} KB)",
        fingerprint=digest,
        source_app=source_app,
        created_at=now,
        metadata={
            "width": width,
            "height": height,
            "format": payload.format.lower(),
            "size_bytes": size_bytes,
        },
    )


def _classify_files(
    payload: FilePayload, clip_id: str, now: datetime, source_app: str
) -> ClipRecord:
    paths = [p for p in payload.paths if p and p.strip()]
    if not paths:
        return _plain_record("", clip_id, now, source_app)

    total_size = 0
    size_known = False
    for path in paths:
        try:
            total_size += os.path.getsize(path)
            size_known = True
        except OSError:
            continue

    if len(paths) == 1:
        preview = f"[File] {file_name(paths[0])}"
    else:
        preview = f"[Files] {len(paths)} items"
        if size_known:
            preview += f" ({total_size / (1024 * 1024):.1f} MB)"

    metadata = {"file_paths": paths}
    if size_known:
        metadata["total_size_bytes"] = total_size

    return ClipRecord(
        id=clip_id,
        content_type=ContentType.FILE,
        content=json.dumps(paths, ensure_ascii=False),
        preview_text=preview,
        fingerprint=fingerprint(FilePayload(paths=paths)),
        source_app=source_app,
        created_at=now,
        metadata=metadata,
    )
