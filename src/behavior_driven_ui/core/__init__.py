from .config import (
    UserConfig,
    ResolvedConfig,
    WebServerOptions,
    define_config,
    merge_configurations,
    resolve_config,
    validate_user_config,
)
from .config_loader import ConfigLoadResult, load_config
from .driver import Driver, BaseDriver, TrackingDriver, NavigationEntry, Viewport
from .world import MISSING, World, WorldConfig, DriverSettings
from .exceptions import (
    BehaviorDrivenUIError,
    ConfigError,
    ConfigValidationError,
    ConfigFileLoadError,
    EnvironmentVariableError,
    DriverError,
    ElementNotFoundError,
    DriverTimeoutError,
    NavigationError,
    DriverDestroyedError,
    ExpectationError,
    UnsupportedExpectationError,
    ExpectationParseError,
    ExpectationFailedError,
    WorldError,
    ExtensionPointUnavailableError,
    ServerError,
    RunTimeoutError,
)

__all__ = [
    # Configuration
    "UserConfig",
    "ResolvedConfig",
    "WebServerOptions",
    "define_config",
    "merge_configurations",
    "resolve_config",
    "validate_user_config",
    "ConfigLoadResult",
    "load_config",

    # Driver interface
    "Driver",
    "BaseDriver",
    "TrackingDriver",
    "NavigationEntry",
    "Viewport",

    # World
    "MISSING",
    "World",
    "WorldConfig",
    "DriverSettings",

    # Exceptions
    "BehaviorDrivenUIError",
    "ConfigError",
    "ConfigValidationError",
    "ConfigFileLoadError",
    "EnvironmentVariableError",
    "DriverError",
    "ElementNotFoundError",
    "DriverTimeoutError",
    "NavigationError",
    "DriverDestroyedError",
    "ExpectationError",
    "UnsupportedExpectationError",
    "ExpectationParseError",
    "ExpectationFailedError",
    "WorldError",
    "ExtensionPointUnavailableError",
    "ServerError",
    "RunTimeoutError",
]
