from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union
import base64
import logging

from ..core.driver import TrackingDriver, Viewport
from ..core.exceptions import DriverTimeoutError, ElementNotFoundError, ExpectationFailedError, NavigationError
from .expectations import Hidden, Text, Value, Visible, parse_expectation

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = Viewport(width=1280, height=720)

# 1x1 transparent PNG
_BLANK_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@dataclass
class MockElement:
    """In-memory stand-in for a DOM element"""
    text: str = ""
    value: str = ""
    visible: bool = True
    selected: List[str] = field(default_factory=list)
    clicks: int = 0


class MockDriver(TrackingDriver):
    """
    Browserless driver for fast scenario runs and unit tests.

    Elements are created on first interaction; seed them with set_element()
    to make text/visibility assertions meaningful.
    """

    def __init__(self, viewport: Optional[Viewport] = None):
        super().__init__()
        self._viewport = viewport or DEFAULT_VIEWPORT
        self._elements: Dict[str, MockElement] = {}
        self._stack: List[str] = []
        self._position = -1
        self.screenshots: List[Optional[str]] = []

    # Element store

    def set_element(self, selector: str, **attributes) -> MockElement:
        element = self._elements.setdefault(selector, MockElement())
        for name, value in attributes.items():
            setattr(element, name, value)
        return element

    def remove_element(self, selector: str) -> None:
        self._elements.pop(selector, None)

    def element(self, selector: str) -> MockElement:
        try:
            return self._elements[selector]
        except KeyError:
            raise ElementNotFoundError(selector) from None

    # Navigation

    def _current(self) -> Optional[str]:
        return self._stack[self._position] if self._position >= 0 else None

    def goto(self, url: str) -> None:
        self._check_not_destroyed()
        if not url:
            raise NavigationError(url)
        del self._stack[self._position + 1:]
        self._stack.append(url)
        self._position = len(self._stack) - 1
        self._record_navigation(url)

    def reload(self) -> None:
        self._check_not_destroyed()
        current = self._current()
        if current is None:
            raise NavigationError("about:blank", RuntimeError("nothing to reload"))
        self._record_navigation(current)

    def back(self) -> None:
        self._check_not_destroyed()
        if self._position > 0:
            self._position -= 1
            self._record_navigation(self._stack[self._position])

    def forward(self) -> None:
        self._check_not_destroyed()
        if self._position < len(self._stack) - 1:
            self._position += 1
            self._record_navigation(self._stack[self._position])

    # Interaction

    def click(self, selector: str) -> None:
        self._check_not_destroyed()
        self.set_element(selector).clicks += 1

    def type(self, selector: str, text: str) -> None:
        self._check_not_destroyed()
        element = self.set_element(selector)
        element.value += text

    def fill(self, selector: str, text: str) -> None:
        self._check_not_destroyed()
        self.set_element(selector, value=text)

    def select(self, selector: str, values: Union[str, Sequence[str]]) -> None:
        self._check_not_destroyed()
        chosen = [values] if isinstance(values, str) else list(values)
        self.set_element(selector, selected=chosen, value=",".join(chosen))

    def wait_for(self, selector: str, timeout: Optional[float] = None) -> None:
        self._check_not_destroyed()
        if selector not in self._elements:
            raise DriverTimeoutError(f"Timed out waiting for {selector}", selector)

    def expect(self, selector: str, condition: str) -> None:
        self._check_not_destroyed()
        parsed = parse_expectation(condition)
        element = self._elements.get(selector)

        if isinstance(parsed, Visible):
            if element is None or not element.visible:
                raise ExpectationFailedError(selector, parsed.describe())
        elif isinstance(parsed, Hidden):
            if element is not None and element.visible:
                raise ExpectationFailedError(selector, parsed.describe())
        elif isinstance(parsed, Text):
            actual = self.get_text(selector)
            if not parsed.matches(actual):
                raise ExpectationFailedError(selector, parsed.describe(), parsed.value, actual)
        elif isinstance(parsed, Value):
            actual = self.get_value(selector)
            if actual != parsed.value:
                raise ExpectationFailedError(selector, parsed.describe(), parsed.value, actual)

    def get_text(self, selector: str) -> str:
        self._check_not_destroyed()
        return self.element(selector).text

    def get_value(self, selector: str) -> str:
        self._check_not_destroyed()
        return self.element(selector).value

    # Capture / viewport

    def screenshot(self, path: Optional[str] = None) -> bytes:
        self._check_not_destroyed()
        self.screenshots.append(path)
        if path:
            with open(path, "wb") as f:
                f.write(_BLANK_PNG)
        return _BLANK_PNG

    def full_page_screenshot(self, path: Optional[str] = None) -> bytes:
        return self.screenshot(path)

    def set_viewport(self, width: int, height: int) -> None:
        self._check_not_destroyed()
        self._viewport = Viewport(width=width, height=height)

    def get_viewport(self) -> Viewport:
        self._check_not_destroyed()
        return self._viewport

    def _teardown(self) -> None:
        self._elements.clear()
        self._stack.clear()
        self._position = -1
