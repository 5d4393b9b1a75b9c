"""Window and notification collaborators the engine talks to."""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Host(ABC):
    """The shell around the engine: windows, toasts and system notifications."""

    @abstractmethod
    async def is_main_window_visible(self) -> bool:
        ...

    @abstractmethod
    async def hide_main_window(self) -> None:
        ...

    @abstractmethod
    async def hide_input_panel(self) -> None:
        ...

    @abstractmethod
    async def show_notification(self, title: str, body: str) -> None:
        ...

    @abstractmethod
    async def show_toast(self, message: str, error: bool = False) -> None:
        ...


class LoggingHost(Host):
    """Headless host that records window state and logs what it would show."""

    def __init__(self, main_window_visible: bool = False):
        self.main_window_visible = main_window_visible
        self.input_panel_visible = False

    async def is_main_window_visible(self) -> bool:
        return self.main_window_visible

    async def hide_main_window(self) -> None:
        self.main_window_visible = False

    async def hide_input_panel(self) -> None:
        self.input_panel_visible = False

    async def show_notification(self, title: str, body: str) -> None:
        logger.info(f"{title}: {body}")

    async def show_toast(self, message: str, error: bool = False) -> None:
        if error:
            logger.error(message)
        else:
            logger.info(message)
