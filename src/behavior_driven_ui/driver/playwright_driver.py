from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence, Union
import logging

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Frame,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from ..core.driver import TrackingDriver, Viewport
from ..core.exceptions import (
    DriverError,
    DriverTimeoutError,
    ElementNotFoundError,
    ExpectationFailedError,
    NavigationError,
)
from .expectations import Hidden, Text, Value, Visible, parse_expectation

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000
NAVIGATION_WAIT = "domcontentloaded"

# Collects what get_value() needs in a single round-trip
_VALUE_PROBE = """
(el) => ({
    tag: el.tagName.toLowerCase(),
    type: (el.getAttribute('type') || '').toLowerCase(),
    multiple: !!el.multiple,
    checked: !!el.checked,
    value: el.value === undefined ? null : String(el.value),
    selected: el.options ? Array.from(el.options).filter(o => o.selected).map(o => o.value) : [],
})
"""


# Collapses the selection to the end of the whole content (multi-line too);
# returns false where the element has no selectable text range.
_CARET_TO_END = """
(el) => {
    if (typeof el.value === "string") {
        try {
            el.setSelectionRange(el.value.length, el.value.length);
            return true;
        } catch (e) {
            return false;
        }
    }
    if (el.isContentEditable) {
        const range = document.createRange();
        range.selectNodeContents(el);
        range.collapse(false);
        const selection = window.getSelection();
        selection.removeAllRanges();
        selection.addRange(range);
        return true;
    }
    return false;
}
"""


def element_value(probe: Dict[str, Any]) -> str:
    """
    Map an element description to the value string assertions compare against.

    Checkboxes report "true"/"false", radios their value only when checked,
    multi-selects the selected option values comma-joined in DOM order.
    """
    if probe.get("tag") == "input" and probe.get("type") == "checkbox":
        return "true" if probe.get("checked") else "false"
    if probe.get("tag") == "input" and probe.get("type") == "radio":
        return (probe.get("value") or "") if probe.get("checked") else ""
    if probe.get("tag") == "select" and probe.get("multiple"):
        return ",".join(probe.get("selected") or [])
    return probe.get("value") or ""


class PlaywrightDriver(TrackingDriver):
    """Real-browser driver on top of Playwright's sync API"""

    def __init__(
        self,
        page: Page,
        context: Optional[BrowserContext] = None,
        browser: Optional[Browser] = None,
        playwright: Optional[Playwright] = None,
        default_timeout: float = DEFAULT_TIMEOUT_MS,
    ):
        super().__init__()
        self.page = page
        self.context = context
        self.browser = browser
        self.playwright = playwright
        self.default_timeout = default_timeout

        self.page.set_default_timeout(default_timeout)
        self.page.on("framenavigated", self._on_frame_navigated)

    @classmethod
    def launch(
        cls,
        browser: str = "chromium",
        headless: bool = True,
        viewport: Optional[Viewport] = None,
        default_timeout: float = DEFAULT_TIMEOUT_MS,
    ) -> "PlaywrightDriver":
        """Start Playwright and open a fresh browser, context and page"""
        playwright = sync_playwright().start()
        try:
            browser_type = getattr(playwright, browser)
            launched = browser_type.launch(headless=headless)
            context_args = {}
            if viewport is not None:
                context_args["viewport"] = viewport.as_dict()
            context = launched.new_context(**context_args)
            page = context.new_page()
        except PlaywrightError as e:
            playwright.stop()
            raise DriverError(f"Failed to launch {browser}: {e}") from e

        logger.info(f"Launched {browser} (headless={headless})")
        return cls(
            page,
            context=context,
            browser=launched,
            playwright=playwright,
            default_timeout=default_timeout,
        )

    def _on_frame_navigated(self, frame: Frame) -> None:
        if frame == self.page.main_frame:
            self._record_navigation(frame.url)

    @contextmanager
    def _element_errors(self, selector: str):
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise DriverTimeoutError(f"Timed out acting on {selector}: {e}", selector) from e
        except PlaywrightError as e:
            raise DriverError(f"Driver error on {selector}: {e}") from e

    def _locate(self, selector: str, timeout: Optional[float] = None) -> Locator:
        locator = self.page.locator(selector).first
        try:
            locator.wait_for(state="attached", timeout=timeout or self.default_timeout)
        except PlaywrightTimeoutError as e:
            raise ElementNotFoundError(selector, cause=e) from e
        return locator

    # Navigation

    def goto(self, url: str) -> None:
        self._check_not_destroyed()
        try:
            self.page.goto(url, wait_until=NAVIGATION_WAIT)
        except PlaywrightError as e:
            raise NavigationError(url, e) from e
        self._record_navigation(self.page.url)

    def reload(self) -> None:
        self._check_not_destroyed()
        url = self.page.url
        try:
            self.page.reload(wait_until=NAVIGATION_WAIT)
        except PlaywrightError as e:
            raise NavigationError(url, e) from e

    def back(self) -> None:
        self._check_not_destroyed()
        url = self.page.url
        try:
            self.page.go_back(wait_until=NAVIGATION_WAIT)
        except PlaywrightError as e:
            raise NavigationError(url, e) from e

    def forward(self) -> None:
        self._check_not_destroyed()
        url = self.page.url
        try:
            self.page.go_forward(wait_until=NAVIGATION_WAIT)
        except PlaywrightError as e:
            raise NavigationError(url, e) from e

    # Interaction

    def click(self, selector: str) -> None:
        self._check_not_destroyed()
        locator = self._locate(selector)
        with self._element_errors(selector):
            locator.click()

    def type(self, selector: str, text: str) -> None:
        self._check_not_destroyed()
        locator = self._locate(selector)
        with self._element_errors(selector):
            # Typing appends, so the caret goes after the existing content
            locator.focus()
            if not locator.evaluate(_CARET_TO_END):
                locator.press("End")
            locator.press_sequentially(text)

    def fill(self, selector: str, text: str) -> None:
        self._check_not_destroyed()
        locator = self._locate(selector)
        with self._element_errors(selector):
            locator.fill(text)

    def select(self, selector: str, values: Union[str, Sequence[str]]) -> None:
        self._check_not_destroyed()
        locator = self._locate(selector)
        options = values if isinstance(values, str) else list(values)
        with self._element_errors(selector):
            locator.select_option(options)

    def wait_for(self, selector: str, timeout: Optional[float] = None) -> None:
        self._check_not_destroyed()
        try:
            self.page.locator(selector).first.wait_for(
                state="attached", timeout=timeout or self.default_timeout
            )
        except PlaywrightTimeoutError as e:
            raise DriverTimeoutError(f"Timed out waiting for {selector}", selector) from e

    def expect(self, selector: str, condition: str) -> None:
        self._check_not_destroyed()
        parsed = parse_expectation(condition)

        if isinstance(parsed, (Visible, Hidden)):
            state = "visible" if isinstance(parsed, Visible) else "hidden"
            try:
                self.page.locator(selector).first.wait_for(state=state, timeout=self.default_timeout)
            except PlaywrightTimeoutError as e:
                raise ExpectationFailedError(selector, parsed.describe()) from e
            return

        if isinstance(parsed, Text):
            actual = self.get_text(selector)
            if not parsed.matches(actual):
                raise ExpectationFailedError(selector, parsed.describe(), parsed.value, actual)
            return

        if isinstance(parsed, Value):
            actual = self.get_value(selector)
            if actual != parsed.value:
                raise ExpectationFailedError(selector, parsed.describe(), parsed.value, actual)

    def get_text(self, selector: str) -> str:
        self._check_not_destroyed()
        locator = self._locate(selector)
        with self._element_errors(selector):
            return locator.text_content() or ""

    def get_value(self, selector: str) -> str:
        self._check_not_destroyed()
        locator = self._locate(selector)
        with self._element_errors(selector):
            probe = locator.evaluate(_VALUE_PROBE)
        return element_value(probe)

    # Capture / viewport

    def screenshot(self, path: Optional[str] = None) -> bytes:
        self._check_not_destroyed()
        return self.page.screenshot(path=path)

    def full_page_screenshot(self, path: Optional[str] = None) -> bytes:
        self._check_not_destroyed()
        return self.page.screenshot(path=path, full_page=True)

    def set_viewport(self, width: int, height: int) -> None:
        self._check_not_destroyed()
        self.page.set_viewport_size({"width": width, "height": height})

    def get_viewport(self) -> Viewport:
        self._check_not_destroyed()
        size = self.page.viewport_size or {}
        return Viewport(width=size.get("width", 0), height=size.get("height", 0))

    def _teardown(self) -> None:
        for name, closer in (
            ("page", lambda: self.page.close()),
            ("context", lambda: self.context and self.context.close()),
            ("browser", lambda: self.browser and self.browser.close()),
            ("playwright", lambda: self.playwright and self.playwright.stop()),
        ):
            try:
                closer()
            except PlaywrightError as e:
                logger.warning(f"Error closing {name}: {e}")
