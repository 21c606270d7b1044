"""Weather topic models."""

from __future__ import annotations

from pydantic import field_validator

from pylivetiming.models._base import LiveTimingBaseModel


class WeatherData(LiveTimingBaseModel):
    """Track-side weather (``WeatherData`` topic).

    The feed sends every reading as a string; numeric fields are parsed and
    left ``None`` when absent.
    """

    air_temp: float | None = None
    track_temp: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    rainfall: bool | None = None
    wind_direction: float | None = None
    wind_speed: float | None = None

    @field_validator("rainfall", mode="before")
    @classmethod
    def _coerce_rainfall(cls, value: object) -> object:
        # "0"/"1" on the wire; anything non-zero means rain.
        if isinstance(value, str) and value.strip().replace(".", "", 1).isdigit():
            return float(value) != 0
        return value
