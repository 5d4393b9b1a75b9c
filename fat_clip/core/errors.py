"""Exception types raised by the session engine and its backends."""

from typing import List


class FatClipError(Exception):
    """Base class for engine errors."""


class BackendError(FatClipError):
    """A backend command failed; the caller may retry on its next cycle."""


class ClipNotFoundError(BackendError):
    def __init__(self, clip_id: str):
        super().__init__(f"Clip not found: {clip_id}")
        self.clip_id = clip_id


class ClipboardUnavailableError(BackendError):
    """The system clipboard could not be read or written."""


class PasteError(BackendError):
    """Paste-and-cleanup was refused; the foreground field is untouched."""


class CleanupRequestError(FatClipError, ValueError):
    """A cleanup request is missing fields or carries invalid dates."""


class ShortcutConflictError(FatClipError):
    def __init__(self, conflicts: List[str]):
        super().__init__("; ".join(conflicts))
        self.conflicts = list(conflicts)
