"""Internal constants shared across the library."""

BASE_URL = "https://livetiming.formula1.com/signalrcore"
STATIC_URL = "https://livetiming.formula1.com/static/"
USER_AGENT = "BestHTTP"

#: Suffix marking a topic whose payload is base64 raw-deflate JSON.
COMPRESSED_SUFFIX = ".z"

# ------------------------------------------------------------------
# Hub methods and client-side targets
# ------------------------------------------------------------------

SUBSCRIBE_METHOD = "Subscribe"
UNSUBSCRIBE_METHOD = "Unsubscribe"
FEED_TARGET = "feed"

# ------------------------------------------------------------------
# Topics published by the live timing hub
# ------------------------------------------------------------------

DEFAULT_TOPICS: tuple[str, ...] = (
    "Heartbeat",
    "CarData.z",
    "Position.z",
    "ExtrapolatedClock",
    "TopThree",
    "TimingStats",
    "TimingAppData",
    "WeatherData",
    "TrackStatus",
    "DriverList",
    "RaceControlMessages",
    "SessionInfo",
    "SessionData",
    "LapCount",
    "TimingData",
    "TeamRadio",
    "AudioStreams",
    "ContentStreams",
    "ArchiveStatus",
    "SessionStatus",
    "TyreStintSeries",
    "LapSeries",
    "DriverRaceInfo",
    "ChampionshipPrediction",
    "WeatherDataSeries",
    "CurrentTyres",
    "TlaRcm",
)

#: Default automatic reconnect schedule (seconds before each attempt).
DEFAULT_RECONNECT_DELAYS: tuple[float, ...] = (0.0, 2.0, 10.0, 30.0)
