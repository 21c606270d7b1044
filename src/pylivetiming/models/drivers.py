"""Driver list topic models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from pylivetiming.models._base import LiveTimingBaseModel


class Driver(LiveTimingBaseModel):
    racing_number: str | None = None
    broadcast_name: str | None = None
    full_name: str | None = None
    tla: str | None = None
    line: int | None = None
    team_name: str | None = None
    team_colour: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    reference: str | None = None
    headshot_url: str | None = None
    country_code: str | None = None


class DriverList(LiveTimingBaseModel):
    """``DriverList`` topic: drivers keyed by racing number.

    The topic value is a plain mapping of racing number to driver; it is
    exposed here under ``drivers``. Non-object entries (the feed sometimes
    carries a ``_kf`` marker) are ignored.
    """

    drivers: dict[str, Driver] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_drivers(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "drivers" in values:
            return values
        drivers = {str(k): v for k, v in values.items() if isinstance(v, dict) and k != "raw"}
        return {"drivers": drivers, "raw": values.get("raw", values)}

    def by_line(self) -> list[Driver]:
        """Drivers in timing-screen order (``Line``), unknown lines last."""
        return sorted(self.drivers.values(), key=lambda d: (d.line is None, d.line or 0))
