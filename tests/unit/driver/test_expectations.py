import pytest

from behavior_driven_ui.core.exceptions import ExpectationParseError, UnsupportedExpectationError
from behavior_driven_ui.driver.expectations import (
    SUPPORTED_FORMS,
    Hidden,
    Text,
    TextMatch,
    Value,
    Visible,
    parse_expectation,
)


class TestParseExpectation:
    """Test the expectation condition grammar"""

    def test_visibility(self):
        """Test visibility conditions"""
        assert parse_expectation("to be visible") == Visible()
        assert parse_expectation("  to be hidden ") == Hidden()

    def test_text_conditions(self):
        """Test exact and partial text conditions"""
        assert parse_expectation('to have text "Welcome"') == Text(TextMatch.EQUALS, "Welcome")
        assert parse_expectation('to contain text "Wel"') == Text(TextMatch.CONTAINS, "Wel")

    def test_value_condition(self):
        """Test value condition"""
        assert parse_expectation('to have value "a,b"') == Value("a,b")

    def test_json_escapes(self):
        """Test payloads are decoded as JSON strings"""
        parsed = parse_expectation(r'to have text "Say \"hi\"\n"')
        assert parsed.value == 'Say "hi"\n'

    def test_unicode_payload(self):
        """Test non-ASCII payloads"""
        assert parse_expectation('to contain text "Grüße"').value == "Grüße"

    def test_unsupported(self):
        """Test unknown conditions list the supported forms"""
        with pytest.raises(UnsupportedExpectationError) as exc_info:
            parse_expectation("to be enabled")

        assert exc_info.value.condition == "to be enabled"
        for form in SUPPORTED_FORMS:
            assert form in str(exc_info.value)

    def test_unquoted_payload(self):
        """Test a payload that is not JSON"""
        with pytest.raises(ExpectationParseError):
            parse_expectation("to have text Welcome")

    def test_non_string_payload(self):
        """Test JSON that is not a string"""
        with pytest.raises(ExpectationParseError, match="expected a string"):
            parse_expectation("to have value 42")

    def test_errors_are_value_errors(self):
        """Test both parse errors are ValueErrors"""
        with pytest.raises(ValueError):
            parse_expectation("be visible")
        with pytest.raises(ValueError):
            parse_expectation('to have text "unterminated')


class TestTextMatching:
    """Test text comparison rules"""

    def test_equals_trims_actual(self):
        """Test surrounding whitespace in the page text is ignored"""
        assert Text(TextMatch.EQUALS, "Total").matches("  Total\n")
        assert not Text(TextMatch.EQUALS, "Total").matches("Total: 3")

    def test_contains(self):
        """Test substring matching"""
        assert Text(TextMatch.CONTAINS, "3 items").matches("Cart (3 items)")
        assert not Text(TextMatch.CONTAINS, "4 items").matches("Cart (3 items)")

    def test_descriptions(self):
        """Test human-readable descriptions"""
        assert Visible().describe() == "to be visible"
        assert Text(TextMatch.CONTAINS, "x").describe() == "to contain text"
        assert Value("x").describe() == "to have value"
