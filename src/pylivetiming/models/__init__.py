"""Typed views of documented live timing topics."""

from __future__ import annotations

from typing import Any

from pylivetiming.models._base import LiveTimingBaseModel, keyed_items
from pylivetiming.models.drivers import Driver, DriverList
from pylivetiming.models.media import AudioStreams, ContentStreams, RadioCapture, Stream, TeamRadio
from pylivetiming.models.session_info import (
    ArchiveState,
    ArchiveStatus,
    Circuit,
    Country,
    ExtrapolatedClock,
    Heartbeat,
    LapCount,
    Meeting,
    SessionInfo,
    SessionStatus,
    SessionStatusValue,
)
from pylivetiming.models.telemetry import (
    CarChannels,
    CarData,
    CarDataEntry,
    CarTelemetry,
    Position,
    PositionEntry,
    PositionSnapshot,
)
from pylivetiming.models.track import FlagStatus, RaceControlMessage, RaceControlMessages, TrackStatus, TrackStatusCode
from pylivetiming.models.weather import WeatherData
from pylivetiming.state.topics import normalize_topic_name

#: Normalized topic name -> model class.
TOPIC_MODELS: dict[str, type[LiveTimingBaseModel]] = {
    "ArchiveStatus": ArchiveStatus,
    "AudioStreams": AudioStreams,
    "CarData": CarData,
    "ContentStreams": ContentStreams,
    "DriverList": DriverList,
    "ExtrapolatedClock": ExtrapolatedClock,
    "Heartbeat": Heartbeat,
    "LapCount": LapCount,
    "Position": Position,
    "RaceControlMessages": RaceControlMessages,
    "SessionInfo": SessionInfo,
    "SessionStatus": SessionStatus,
    "TeamRadio": TeamRadio,
    "TrackStatus": TrackStatus,
    "WeatherData": WeatherData,
}


def parse_topic(name: str, value: Any) -> LiveTimingBaseModel | None:
    """Parse a reconciled topic value into its model.

    Returns ``None`` for topics without a model. Raises
    :class:`pydantic.ValidationError` if the value does not fit the model.
    """
    model = TOPIC_MODELS.get(normalize_topic_name(name))
    if model is None or value is None:
        return None
    return model.model_validate(value)


__all__ = [
    "ArchiveState",
    "ArchiveStatus",
    "AudioStreams",
    "CarChannels",
    "CarData",
    "CarDataEntry",
    "CarTelemetry",
    "Circuit",
    "ContentStreams",
    "Country",
    "Driver",
    "DriverList",
    "ExtrapolatedClock",
    "FlagStatus",
    "Heartbeat",
    "LapCount",
    "LiveTimingBaseModel",
    "Meeting",
    "Position",
    "PositionEntry",
    "PositionSnapshot",
    "RaceControlMessage",
    "RaceControlMessages",
    "RadioCapture",
    "SessionInfo",
    "SessionStatus",
    "SessionStatusValue",
    "Stream",
    "TOPIC_MODELS",
    "TeamRadio",
    "TrackStatus",
    "TrackStatusCode",
    "WeatherData",
    "keyed_items",
    "parse_topic",
]
