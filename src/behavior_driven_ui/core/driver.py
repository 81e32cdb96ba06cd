from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union
import logging

from .exceptions import DriverDestroyedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def as_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class NavigationEntry:
    """One main-frame URL change observed by a driver"""
    url: str
    timestamp: datetime = field(default_factory=datetime.now)


class Driver(ABC):
    """Capability surface the world and builtin steps drive the UI through"""

    @abstractmethod
    def goto(self, url: str) -> None:
        """Navigate to url"""
        pass

    @abstractmethod
    def reload(self) -> None:
        pass

    @abstractmethod
    def back(self) -> None:
        pass

    @abstractmethod
    def forward(self) -> None:
        pass

    @abstractmethod
    def click(self, selector: str) -> None:
        pass

    @abstractmethod
    def type(self, selector: str, text: str) -> None:
        """Append text to the element's current content"""
        pass

    @abstractmethod
    def fill(self, selector: str, text: str) -> None:
        """Replace the element's content with text"""
        pass

    @abstractmethod
    def select(self, selector: str, values: Union[str, Sequence[str]]) -> None:
        pass

    @abstractmethod
    def wait_for(self, selector: str, timeout: Optional[float] = None) -> None:
        """Wait until selector is present; timeout in milliseconds"""
        pass

    @abstractmethod
    def expect(self, selector: str, condition: str) -> None:
        """Evaluate an expectation condition such as 'to have text "Hi"'"""
        pass

    @abstractmethod
    def get_text(self, selector: str) -> str:
        pass

    @abstractmethod
    def get_value(self, selector: str) -> str:
        pass

    @abstractmethod
    def screenshot(self, path: Optional[str] = None) -> bytes:
        pass

    @abstractmethod
    def full_page_screenshot(self, path: Optional[str] = None) -> bytes:
        pass

    @abstractmethod
    def set_viewport(self, width: int, height: int) -> None:
        pass

    @abstractmethod
    def get_viewport(self) -> Viewport:
        pass

    @abstractmethod
    def destroy(self) -> None:
        """Release all resources. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def destroyed(self) -> bool:
        pass


class BaseDriver(Driver):
    """
    Implements the Live -> Destroyed state machine.

    Subclasses call _check_not_destroyed() first thing in every capability
    method and put their teardown in _teardown().
    """

    def __init__(self):
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _check_not_destroyed(self) -> None:
        if self._destroyed:
            raise DriverDestroyedError()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        try:
            self._teardown()
        finally:
            logger.debug(f"{self.__class__.__name__} destroyed")

    def _teardown(self) -> None:
        pass


class TrackingDriver(BaseDriver):
    """Driver that keeps an ordered, de-duplicated main-frame navigation history"""

    def __init__(self):
        super().__init__()
        self._history: List[NavigationEntry] = []

    @property
    def navigation_history(self) -> List[NavigationEntry]:
        return list(self._history)

    @property
    def visited_urls(self) -> List[str]:
        return [entry.url for entry in self._history]

    @property
    def current_url(self) -> Optional[str]:
        return self._history[-1].url if self._history else None

    def reset_history(self) -> None:
        self._history.clear()

    def _record_navigation(self, url: str) -> None:
        if not url:
            return
        if self._history and self._history[-1].url == url:
            return
        self._history.append(NavigationEntry(url=url))
        logger.debug(f"Navigated to {url}")
