"""Runtime configuration loaded from the environment."""

import os
import logging
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from fat_clip.models.schemas import ShortcutsConfig

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

TimelineModeName = Literal["standard", "compact", "off"]


class Settings(BaseModel):
    """User-facing settings the engine reacts to."""

    max_history_items: int = 1000
    auto_cleanup_days: Optional[int] = 30
    show_notifications: bool = True
    timeline_mode: TimelineModeName = "standard"
    input_panel_trigger: str = "/v"
    input_panel_selection_modifier: Literal["ctrl", "alt"] = "ctrl"
    poll_interval: float = 0.5
    page_size: int = 50
    log_level: str = "INFO"
    shortcuts: ShortcutsConfig = Field(default_factory=ShortcutsConfig)

    @field_validator("input_panel_selection_modifier", mode="before")
    @classmethod
    def _normalize_modifier(cls, value):
        # Anything other than alt falls back to ctrl
        return "alt" if str(value or "").strip().lower() == "alt" else "ctrl"

    @field_validator("timeline_mode", mode="before")
    @classmethod
    def _normalize_timeline_mode(cls, value):
        value = str(value or "standard").strip().lower()
        return value if value in ("standard", "compact", "off") else "standard"

    @field_validator("auto_cleanup_days", mode="before")
    @classmethod
    def _disable_non_positive_days(cls, value):
        if value in (None, ""):
            return None
        value = int(value)
        return value if value > 0 else None

    @field_validator("poll_interval")
    @classmethod
    def _clamp_interval(cls, value: float) -> float:
        return max(0.05, float(value))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Build settings from ``FATCLIP_*`` environment variables."""
    try:
        return Settings(
            max_history_items=int(os.getenv("FATCLIP_MAX_HISTORY_ITEMS", "1000")),
            auto_cleanup_days=os.getenv("FATCLIP_AUTO_CLEANUP_DAYS", "30"),
            show_notifications=_env_bool("FATCLIP_SHOW_NOTIFICATIONS", "true"),
            timeline_mode=os.getenv("FATCLIP_TIMELINE_MODE", "standard"),
            input_panel_trigger=os.getenv("FATCLIP_INPUT_PANEL_TRIGGER", "/v"),
            input_panel_selection_modifier=os.getenv(
                "FATCLIP_INPUT_PANEL_MODIFIER", "ctrl"
            ),
            poll_interval=float(os.getenv("FATCLIP_POLL_INTERVAL", "0.5")),
            page_size=int(os.getenv("FATCLIP_PAGE_SIZE", "50")),
            log_level=os.getenv("FATCLIP_LOG_LEVEL", "INFO").upper(),
        )
    except ValueError as e:
        logger.warning(f"Invalid configuration in environment, using defaults: {e}")
        return Settings()
