"""
Wire codec for the feed.

Frames are JSON text:

    {"type": "initial" | "update",
     "data": {"date": "...Z", "open": 180.12, "high": ..., "low": ..., "close": ...,
              "volume": 812345, "Name": "BA"}}

Encoding uses orjson; decoding validates the envelope with pydantic and raises
MessageParseError on anything malformed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stockfeed.feed.errors import MessageParseError
from stockfeed.feed.types import FeedMessage, MessageType
from stockfeed.types.types import Bar, parse_timestamp


class BarPayload(BaseModel):
    """Wire schema of a bar."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = Field(ge=0)
    name: str = Field(alias="Name")

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        if isinstance(value, str):
            try:
                return parse_timestamp(value)
            except OverflowError as e:
                raise ValueError(f"date out of range: {value}") from e
        return value

    def to_bar(self) -> Bar:
        return Bar(
            timestamp=self.date,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
            symbol=self.name,
        )


class Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["initial", "update"]
    data: BarPayload


def encode_message(message_type: MessageType, bar: Bar) -> str:
    """Serialize one message as a JSON text frame."""
    return orjson.dumps({"type": message_type.value, "data": bar.to_wire()}).decode("utf-8")


def decode_message(raw: Union[str, bytes]) -> FeedMessage:
    """
    Parse a text frame into a FeedMessage.

    Raises:
        MessageParseError: If the frame is not JSON or does not match the wire schema
    """
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MessageParseError(
            f"Invalid JSON: {e}",
            raw_data=raw if isinstance(raw, str) else None,
            expected_type="json",
            component="protocol",
        ) from e

    if not isinstance(payload, dict):
        raise MessageParseError(
            f"Expected a JSON object, got {type(payload).__name__}",
            expected_type="object",
            component="protocol",
        )

    try:
        envelope = Envelope.model_validate(payload)
    except ValidationError as e:
        raise MessageParseError(
            f"Message does not match schema: {e.error_count()} error(s)",
            expected_type="feed_message",
            component="protocol",
            details={"errors": [err["loc"] for err in e.errors()]},
        ) from e

    return FeedMessage(type=MessageType(envelope.type), bar=envelope.data.to_bar())
