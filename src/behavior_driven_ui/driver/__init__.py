from .expectations import (
    ExpectationCondition,
    Hidden,
    Text,
    TextMatch,
    Value,
    Visible,
    parse_expectation,
)
from .mock_driver import MockDriver
from .playwright_driver import PlaywrightDriver
from .factory import create_driver

__all__ = [
    "ExpectationCondition",
    "Visible",
    "Hidden",
    "Text",
    "TextMatch",
    "Value",
    "parse_expectation",
    "MockDriver",
    "PlaywrightDriver",
    "create_driver",
]
