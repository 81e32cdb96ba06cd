from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union
import logging

from .config import DEFAULT_BREAKPOINTS, DEFAULT_VIEWPORT_HEIGHT, ResolvedConfig
from .driver import Driver
from .exceptions import DriverError, NavigationError, WorldError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STEP_TIMEOUT_MS = 30000


class _Missing:
    """Sentinel returned by World.get_data() for keys that were never stored"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


@dataclass
class DriverSettings:
    kind: str = "playwright"
    browser: str = "chromium"
    headless: bool = True


@dataclass
class WorldConfig:
    """The world's own mutable copy of the configuration it needs"""
    base_url: Optional[str] = None
    driver: DriverSettings = field(default_factory=DriverSettings)
    breakpoints: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_BREAKPOINTS))
    default_height: int = DEFAULT_VIEWPORT_HEIGHT
    default_timeout: float = DEFAULT_STEP_TIMEOUT_MS

    @classmethod
    def from_resolved(cls, config: ResolvedConfig, default_timeout: float = DEFAULT_STEP_TIMEOUT_MS) -> "WorldConfig":
        return cls(
            base_url=config.base_url,
            driver=DriverSettings(
                kind=config.driver.kind,
                browser=config.driver.browser,
                headless=config.driver.headless,
            ),
            breakpoints=dict(config.breakpoints.override),
            default_height=config.breakpoints.default_height,
            default_timeout=default_timeout,
        )

    def copy(self) -> "WorldConfig":
        return replace(self, driver=replace(self.driver), breakpoints=dict(self.breakpoints))


DriverFactory = Callable[[WorldConfig], Driver]


class World:
    """
    Per-scenario execution context.

    Owns a lazily created driver, a scenario-scoped data store and a
    page-object cache. One instance is built for every scenario.
    """

    def __init__(
        self,
        config: Union[WorldConfig, ResolvedConfig, None] = None,
        driver: Optional[Driver] = None,
        driver_factory: Optional[DriverFactory] = None,
    ):
        if isinstance(config, ResolvedConfig):
            config = WorldConfig.from_resolved(config)
        elif isinstance(config, WorldConfig):
            config = config.copy()
        else:
            config = WorldConfig()

        usable_driver = driver is not None and not driver.destroyed
        if not usable_driver and driver_factory is None:
            raise WorldError("World requires a live driver or a driver_factory")

        self.config: WorldConfig = config
        self._driver: Optional[Driver] = driver if usable_driver else None
        self._driver_factory = driver_factory
        self._data: Dict[str, Any] = {}
        self._page_objects: Dict[type, Any] = {}
        self._destroyed = False

    # Driver

    @property
    def driver(self) -> Driver:
        if self._driver is None:
            raise DriverError("Driver has not been created yet; call ensure_driver() first")
        return self._driver

    @property
    def has_driver(self) -> bool:
        return self._driver is not None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def ensure_driver(self) -> Driver:
        """Return the driver, creating it through the factory on first use"""
        if self._destroyed:
            raise WorldError("World has been destroyed")
        if self._driver is None or self._driver.destroyed:
            if self._driver_factory is None:
                raise WorldError("Driver was destroyed and no driver_factory is available")
            self._driver = self._driver_factory(self.config)
            logger.debug(f"Created driver {self._driver.__class__.__name__}")
        return self._driver

    # Scenario data

    def set_data(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get_data(self, key: str, default: Any = MISSING) -> Any:
        return self._data.get(key, default)

    def has_data(self, key: str) -> bool:
        return key in self._data

    def delete_data(self, key: str) -> None:
        self._data.pop(key, None)

    def clear_data(self) -> None:
        self._data.clear()

    # Page objects

    def create_page_object(self, page_class: Type[T], *args, **kwargs) -> T:
        """
        Instantiate page_class once per scenario.

        Later calls return the cached instance and ignore their arguments.
        """
        if page_class not in self._page_objects:
            self._page_objects[page_class] = page_class(*args, **kwargs)
        return self._page_objects[page_class]

    def clear_page_objects(self) -> None:
        self._page_objects.clear()

    # Lifecycle

    def before_scenario(self) -> None:
        """Reset scenario state and open the base URL. Runs fully on every call."""
        self.clear_data()
        self.clear_page_objects()

        url = self.config.base_url
        if not url:
            return

        driver = self.ensure_driver()
        try:
            driver.goto(url)
        except NavigationError as e:
            if e.url == url:
                raise
            raise NavigationError(url, e) from e
        except DriverError as e:
            raise NavigationError(url, e) from e

    def after_scenario(self) -> None:
        self.clear_data()
        self.clear_page_objects()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.clear_data()
        self.clear_page_objects()
        if self._driver is not None:
            self._driver.destroy()
