"""
Tests for payload helpers.
"""
from relay_gateway.core.text import TRUNCATED_INDICATOR, to_payload, truncate


class TestTruncate:

    def test_short_message_unchanged(self):
        assert truncate("short", 10) == "short"

    def test_long_message(self):
        result = truncate("a" * 100, 40)

        assert len(result) == 40
        assert result.endswith(TRUNCATED_INDICATOR)

    def test_structured_message_is_encoded(self):
        assert truncate({"a": 1}) == '{"a": 1}'


class TestToPayload:

    def test_string_passthrough(self):
        assert to_payload('{"already": "json"}') == '{"already": "json"}'

    def test_structured(self):
        assert to_payload({"x": [1, 2]}) == '{"x": [1, 2]}'

    def test_number(self):
        assert to_payload(42) == "42"
