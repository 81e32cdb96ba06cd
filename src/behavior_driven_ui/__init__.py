"""
behavior-driven-ui - behave step library, world runtime and runner for browser UI tests
"""

__version__ = "0.1.0"
__author__ = "behavior-driven-ui Contributors"

from .core import (
    MISSING,
    BehaviorDrivenUIError,
    ConfigError,
    ConfigValidationError,
    ConfigFileLoadError,
    Driver,
    NavigationEntry,
    ResolvedConfig,
    UserConfig,
    World,
    WorldConfig,
    define_config,
    load_config,
    merge_configurations,
)
from .driver import MockDriver, PlaywrightDriver, create_driver, parse_expectation
from .bdd import (
    BehaviorDrivenWorld,
    ParameterType,
    SupportBundle,
    build_builtin_bundle,
    compose,
    execute_run,
    run_features,
)

__all__ = [
    "__version__",

    # Configuration
    "UserConfig",
    "ResolvedConfig",
    "define_config",
    "merge_configurations",
    "load_config",

    # Runtime
    "World",
    "WorldConfig",
    "BehaviorDrivenWorld",
    "MISSING",

    # Drivers
    "Driver",
    "NavigationEntry",
    "MockDriver",
    "PlaywrightDriver",
    "create_driver",
    "parse_expectation",

    # Bundles and running
    "SupportBundle",
    "ParameterType",
    "build_builtin_bundle",
    "compose",
    "run_features",
    "execute_run",

    # Exceptions
    "BehaviorDrivenUIError",
    "ConfigError",
    "ConfigValidationError",
    "ConfigFileLoadError",
]
