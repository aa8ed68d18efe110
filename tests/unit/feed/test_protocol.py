"""
Unit tests for the wire codec.
"""

from datetime import datetime, timezone

import orjson
import pytest

from stockfeed.feed.errors import MessageParseError
from stockfeed.feed.protocol import decode_message, encode_message
from stockfeed.feed.types import MessageType
from stockfeed.types.types import Bar


@pytest.fixture
def sample_bar() -> Bar:
    return Bar(
        timestamp=datetime(2024, 3, 1, 14, 30, 5, 123000, tzinfo=timezone.utc),
        open=180.0,
        high=181.25,
        low=179.4,
        close=180.95,
        volume=812_345,
        symbol="BA",
    )


class TestEncode:
    def test_wire_shape(self, sample_bar: Bar) -> None:
        """Encoded frames use the dashboard field names."""
        payload = orjson.loads(encode_message(MessageType.INITIAL, sample_bar))
        assert payload == {
            "type": "initial",
            "data": {
                "date": "2024-03-01T14:30:05.123Z",
                "open": 180.0,
                "high": 181.25,
                "low": 179.4,
                "close": 180.95,
                "volume": 812345,
                "Name": "BA",
            },
        }

    def test_encode_returns_text(self, sample_bar: Bar) -> None:
        assert isinstance(encode_message(MessageType.UPDATE, sample_bar), str)


class TestDecode:
    def test_decode_encoded_message(self, sample_bar: Bar) -> None:
        message = decode_message(encode_message(MessageType.UPDATE, sample_bar))
        assert message.type == MessageType.UPDATE
        assert message.bar == sample_bar

    def test_decode_accepts_bytes(self, sample_bar: Bar) -> None:
        raw = encode_message(MessageType.INITIAL, sample_bar).encode("utf-8")
        assert decode_message(raw).type == MessageType.INITIAL

    def test_naive_date_is_taken_as_utc(self) -> None:
        raw = (
            '{"type": "update", "data": {"date": "2024-03-01T14:30:05", "open": 1, "high": 2,'
            ' "low": 0.5, "close": 1.5, "volume": 10, "Name": "BA"}}'
        )
        bar = decode_message(raw).bar
        assert bar.timestamp == datetime(2024, 3, 1, 14, 30, 5, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '{"type": "update"}',
            '{"type": "snapshot", "data": {}}',
            '{"type": "update", "data": {"date": "2024-03-01T00:00:00Z", "open": 1, "high": 2,'
            ' "low": 0.5, "close": 1.5, "volume": -5, "Name": "BA"}}',
            '{"type": "update", "data": {"date": "yesterday", "open": 1, "high": 2,'
            ' "low": 0.5, "close": 1.5, "volume": 5, "Name": "BA"}}',
            '{"type": "update", "data": {"date": "2024-03-01T00:00:00Z", "open": "abc", "high": 2,'
            ' "low": 0.5, "close": 1.5, "volume": 5, "Name": "BA"}}',
            '{"type": "update", "data": {"date": "9999-12-31T23:59:59-05:00", "open": 1, "high": 2,'
            ' "low": 0.5, "close": 1.5, "volume": 5, "Name": "BA"}}',
        ],
    )
    def test_malformed_messages_raise(self, raw: str) -> None:
        with pytest.raises(MessageParseError):
            decode_message(raw)
