"""Recording, matching and validation of keyboard chords."""

import logging
from typing import List, Optional

from fat_clip.models.schemas import KeyEvent, ShortcutConfig, ShortcutsConfig

logger = logging.getLogger(__name__)

MODIFIER_KEYS = ("Control", "Alt", "Shift", "Meta", "OS")
MODIFIER_ORDER = ("Ctrl", "Alt", "Shift", "Meta")
SEPARATOR = "+"


def normalize_key(key: str) -> str:
    return "Space" if key == " " else key


def _modifier_tokens(chord) -> List[str]:
    flags = (chord.ctrl, chord.alt, chord.shift, chord.meta)
    return [name for name, on in zip(MODIFIER_ORDER, flags) if on]


def shortcut_to_string(config: ShortcutConfig) -> str:
    """Canonical ``Ctrl+Alt+Shift+Meta+Key`` form used for storage and conflicts."""
    parts = _modifier_tokens(config)
    if config.key:
        parts.append(normalize_key(config.key))
    return SEPARATOR.join(parts)


def string_to_shortcut(value: str) -> ShortcutConfig:
    parts = value.split(SEPARATOR)
    return ShortcutConfig(
        key=parts[-1] or "",
        ctrl="Ctrl" in parts,
        alt="Alt" in parts,
        shift="Shift" in parts,
        meta="Meta" in parts or "Cmd" in parts or "Super" in parts,
    )


def format_shortcut(config: ShortcutConfig) -> str:
    """Human-readable form, e.g. ``Ctrl + Shift + V``."""
    return " + ".join(shortcut_to_string(config).split(SEPARATOR))


def matches_shortcut(event: KeyEvent, config: ShortcutConfig) -> bool:
    """Exact match on key token and all four modifier flags."""
    return (
        normalize_key(event.key) == normalize_key(config.key)
        and event.ctrl == config.ctrl
        and event.alt == config.alt
        and event.shift == config.shift
        and event.meta == config.meta
    )


def binding_names() -> List[str]:
    return list(ShortcutsConfig.model_fields)


def match_action(event: KeyEvent, shortcuts: ShortcutsConfig) -> Optional[str]:
    """Name of the first binding the event triggers, if any."""
    for name in binding_names():
        if matches_shortcut(event, getattr(shortcuts, name)):
            return name
    return None


def find_conflicts(shortcuts: ShortcutsConfig) -> List[str]:
    """Every pair of bindings that share a canonical chord."""
    bindings = [(name, shortcut_to_string(getattr(shortcuts, name))) for name in binding_names()]
    conflicts = []
    for i, (name1, chord1) in enumerate(bindings):
        for name2, chord2 in bindings[i + 1 :]:
            if chord1 == chord2:
                conflicts.append(f"{name1} conflicts with {name2}")
    return conflicts


class ShortcutRecorder:
    """Captures one chord from live key events.

    While recording, held modifier keys accumulate for display. The first
    non-modifier key down commits a chord built from that event's own
    modifier flags. Losing focus cancels without committing.
    """

    def __init__(self):
        self.is_recording = False
        self.held: List[str] = []
        self.recorded: Optional[ShortcutConfig] = None

    def start(self):
        self.is_recording = True
        self.held = []

    def key_down(self, event: KeyEvent) -> Optional[ShortcutConfig]:
        if not self.is_recording:
            return None

        if event.key in MODIFIER_KEYS:
            if event.key not in self.held:
                self.held.append(event.key)
            return None

        chord = ShortcutConfig(
            key=normalize_key(event.key),
            ctrl=event.ctrl,
            alt=event.alt,
            shift=event.shift,
            meta=event.meta,
        )
        self.recorded = chord
        self._stop()
        logger.debug(f"Recorded shortcut {shortcut_to_string(chord)}")
        return chord

    def key_up(self, event: KeyEvent):
        if self.is_recording and event.key in self.held:
            self.held.remove(event.key)

    def blur(self):
        self._stop()

    @property
    def display_text(self) -> str:
        if not self.is_recording:
            return format_shortcut(self.recorded) if self.recorded else ""
        if self.held:
            return " + ".join(self.held) + " + ..."
        return "Press keys..."

    def _stop(self):
        self.is_recording = False
        self.held = []
