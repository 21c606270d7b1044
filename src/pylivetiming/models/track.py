"""Track status and race control topic models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from pylivetiming.models._base import LiveTimingBaseModel, keyed_items


class TrackStatusCode(StrEnum):
    ALL_CLEAR = "1"
    YELLOW = "2"
    GREEN = "3"
    SC_DEPLOYED = "4"
    RED = "5"
    VSC_DEPLOYED = "6"
    VSC_ENDING = "7"


class FlagStatus(StrEnum):
    CLEAR = "CLEAR"
    GREEN = "GREEN"
    RED = "RED"
    YELLOW = "YELLOW"
    DOUBLE_YELLOW = "DOUBLE YELLOW"
    CHEQUERED = "CHEQUERED"
    BLUE = "BLUE"
    BLACK = "BLACK"
    BLACK_AND_WHITE = "BLACK AND WHITE"
    BLACK_AND_ORANGE = "BLACK AND ORANGE"


class TrackStatus(LiveTimingBaseModel):
    """``TrackStatus`` topic. Unknown codes are kept as plain strings."""

    status: TrackStatusCode | str | None = None
    message: str | None = None


class RaceControlMessage(LiveTimingBaseModel):
    utc: str | None = None
    lap: int | None = None
    category: str | None = None
    flag: FlagStatus | str | None = None
    message: str | None = None
    sector: int | None = None
    scope: str | None = None
    mode: str | None = None
    status: str | None = None
    racing_number: str | None = None


class RaceControlMessages(LiveTimingBaseModel):
    """``RaceControlMessages`` topic."""

    messages: list[RaceControlMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        return keyed_items(value)

    @property
    def latest(self) -> RaceControlMessage | None:
        return self.messages[-1] if self.messages else None
