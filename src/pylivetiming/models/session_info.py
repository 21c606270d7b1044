"""Session metadata topic models."""

from __future__ import annotations

from enum import StrEnum

from pylivetiming._constants import STATIC_URL
from pylivetiming.models._base import LiveTimingBaseModel


class ArchiveState(StrEnum):
    COMPLETE = "Complete"
    GENERATING = "Generating"


class SessionStatusValue(StrEnum):
    STARTED = "Started"
    ABORTED = "Aborted"
    INACTIVE = "Inactive"
    FINISHED = "Finished"
    FINALISED = "Finalised"
    ENDS = "Ends"


class Country(LiveTimingBaseModel):
    key: int | None = None
    code: str | None = None
    name: str | None = None


class Circuit(LiveTimingBaseModel):
    key: int | None = None
    short_name: str | None = None


class Meeting(LiveTimingBaseModel):
    key: int | None = None
    name: str | None = None
    official_name: str | None = None
    location: str | None = None
    country: Country | None = None
    circuit: Circuit | None = None


class ArchiveStatus(LiveTimingBaseModel):
    """``ArchiveStatus`` topic (also nested in ``SessionInfo``)."""

    status: ArchiveState | str | None = None


class SessionInfo(LiveTimingBaseModel):
    """``SessionInfo`` topic."""

    meeting: Meeting | None = None
    archive_status: ArchiveStatus | None = None
    key: int | None = None
    type: str | None = None
    number: int | None = None
    name: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    gmt_offset: str | None = None
    path: str | None = None

    def static_url(self, path: str = "") -> str | None:
        """Absolute URL of a file under this session's static archive path.

        Audio and content stream ``Path`` values are relative to the session
        path. Returns ``None`` when the session path is unknown.
        """
        if not self.path:
            return None
        return f"{STATIC_URL}{self.path}{path}"


class SessionStatus(LiveTimingBaseModel):
    """``SessionStatus`` topic."""

    status: SessionStatusValue | str | None = None


class LapCount(LiveTimingBaseModel):
    current_lap: int | None = None
    total_laps: int | None = None


class ExtrapolatedClock(LiveTimingBaseModel):
    utc: str | None = None
    remaining: str | None = None
    extrapolating: bool | None = None


class Heartbeat(LiveTimingBaseModel):
    utc: str | None = None
