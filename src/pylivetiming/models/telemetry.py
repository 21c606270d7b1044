"""Car telemetry and position topic models (``CarData``/``Position``)."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pylivetiming.models._base import LiveTimingBaseModel, keyed_items


class CarChannels(BaseModel):
    """Telemetry channels of one car, keyed by channel number on the wire."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    rpm: int | None = Field(default=None, validation_alias=AliasChoices("0", "rpm"))
    speed: int | None = Field(default=None, validation_alias=AliasChoices("2", "speed"))
    gear: int | None = Field(default=None, validation_alias=AliasChoices("3", "gear"))
    throttle: int | None = Field(default=None, validation_alias=AliasChoices("4", "throttle"))
    brake: int | None = Field(default=None, validation_alias=AliasChoices("5", "brake"))
    drs: int | None = Field(default=None, validation_alias=AliasChoices("45", "drs"))


class CarTelemetry(LiveTimingBaseModel):
    channels: CarChannels = Field(default_factory=CarChannels)


class CarDataEntry(LiveTimingBaseModel):
    utc: str | None = None
    cars: dict[str, CarTelemetry] = Field(default_factory=dict)


class CarData(LiveTimingBaseModel):
    """``CarData`` topic (decoded from ``CarData.z``)."""

    entries: list[CarDataEntry] = Field(default_factory=list)

    @field_validator("entries", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        return keyed_items(value)


class PositionEntry(LiveTimingBaseModel):
    status: str | None = None
    x: float | None = None
    y: float | None = None
    z: float | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class PositionSnapshot(LiveTimingBaseModel):
    timestamp: str | None = None
    entries: dict[str, PositionEntry] = Field(default_factory=dict)


class Position(LiveTimingBaseModel):
    """``Position`` topic (decoded from ``Position.z``)."""

    position: list[PositionSnapshot] = Field(default_factory=list)

    @field_validator("position", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        return keyed_items(value)
