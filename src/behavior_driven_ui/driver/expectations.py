"""
Expectation conditions understood by Driver.expect().

Exactly five grammars are accepted:

    to be visible
    to be hidden
    to have text "<json string>"
    to contain text "<json string>"
    to have value "<json string>"
"""
from dataclasses import dataclass
from enum import Enum
from typing import Union
import json

from ..core.exceptions import ExpectationParseError, UnsupportedExpectationError

SUPPORTED_FORMS = (
    'to be visible',
    'to be hidden',
    'to have text "<text>"',
    'to contain text "<text>"',
    'to have value "<value>"',
)

_VISIBLE = "to be visible"
_HIDDEN = "to be hidden"
_HAVE_TEXT = "to have text "
_CONTAIN_TEXT = "to contain text "
_HAVE_VALUE = "to have value "


class TextMatch(Enum):
    EQUALS = "equals"
    CONTAINS = "contains"


@dataclass(frozen=True)
class Visible:
    def describe(self) -> str:
        return "to be visible"


@dataclass(frozen=True)
class Hidden:
    def describe(self) -> str:
        return "to be hidden"


@dataclass(frozen=True)
class Text:
    mode: TextMatch
    value: str

    def matches(self, actual: str) -> bool:
        if self.mode is TextMatch.EQUALS:
            return actual.strip() == self.value
        return self.value in actual

    def describe(self) -> str:
        if self.mode is TextMatch.EQUALS:
            return "to have text"
        return "to contain text"


@dataclass(frozen=True)
class Value:
    value: str

    def describe(self) -> str:
        return "to have value"


ExpectationCondition = Union[Visible, Hidden, Text, Value]


def _decode_payload(payload: str) -> str:
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ExpectationParseError(payload, e.msg) from e
    if not isinstance(decoded, str):
        raise ExpectationParseError(payload, f"expected a string, got {type(decoded).__name__}")
    return decoded


def parse_expectation(condition: str) -> ExpectationCondition:
    """
    Parse a condition string into its closed variant.

    Raises:
        UnsupportedExpectationError: none of the five grammars match
        ExpectationParseError: the quoted payload is not a JSON string
    """
    text = condition.strip()

    if text == _VISIBLE:
        return Visible()
    if text == _HIDDEN:
        return Hidden()
    if text.startswith(_HAVE_TEXT):
        return Text(TextMatch.EQUALS, _decode_payload(text[len(_HAVE_TEXT):].strip()))
    if text.startswith(_CONTAIN_TEXT):
        return Text(TextMatch.CONTAINS, _decode_payload(text[len(_CONTAIN_TEXT):].strip()))
    if text.startswith(_HAVE_VALUE):
        return Value(_decode_payload(text[len(_HAVE_VALUE):].strip()))

    raise UnsupportedExpectationError(condition, SUPPORTED_FORMS)
