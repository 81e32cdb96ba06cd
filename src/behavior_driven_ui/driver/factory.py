from typing import Callable, Dict
import logging

from ..core.driver import Driver
from ..core.exceptions import DriverError
from .mock_driver import MockDriver
from .playwright_driver import PlaywrightDriver

logger = logging.getLogger(__name__)


def _playwright(settings, default_timeout: float) -> Driver:
    return PlaywrightDriver.launch(
        browser=settings.browser,
        headless=settings.headless,
        default_timeout=default_timeout,
    )


def _mock(settings, default_timeout: float) -> Driver:
    return MockDriver()


DRIVER_BUILDERS: Dict[str, Callable[..., Driver]] = {
    "playwright": _playwright,
    "mock": _mock,
}


def create_driver(config, default_timeout: float = 30000) -> Driver:
    """
    Build the driver selected by config.driver.kind.

    Accepts a ResolvedConfig or a WorldConfig; both expose
    driver.kind, driver.browser and driver.headless.
    """
    settings = config.driver
    builder = DRIVER_BUILDERS.get(settings.kind)
    if builder is None:
        available = ", ".join(sorted(DRIVER_BUILDERS))
        raise DriverError(f"Unsupported driver kind: {settings.kind!r}. Available: {available}")

    logger.debug(f"Creating {settings.kind} driver ({settings.browser}, headless={settings.headless})")
    return builder(settings, default_timeout)
