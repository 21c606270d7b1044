"""pylivetiming - Async Python client mirroring the F1 live timing feed."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylivetiming")
except PackageNotFoundError:
    __version__ = "0+local"
from pylivetiming._codec import decode_topic_payload
from pylivetiming._hub import HubConnection, HubConnectionState
from pylivetiming.client import LiveTimingClient
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import (
    ConfigError,
    DecodeError,
    LiveTimingError,
    MergeError,
    TransportError,
)
from pylivetiming.session import SessionState, SubscriptionSession
from pylivetiming.state.events import FeedUpdate, UpdateEvent
from pylivetiming.state.merge import MISSING, merge
from pylivetiming.state.store import ReconciliationStore
from pylivetiming.state.topics import MergeMode, TopicRoute, classify, normalize_topic_name

__all__ = [
    "__version__",
    "ConfigError",
    "DecodeError",
    "FeedUpdate",
    "HubConnection",
    "HubConnectionState",
    "LiveTimingClient",
    "LiveTimingConfig",
    "LiveTimingError",
    "MISSING",
    "MergeError",
    "MergeMode",
    "ReconciliationStore",
    "SessionState",
    "SubscriptionSession",
    "TopicRoute",
    "TransportError",
    "UpdateEvent",
    "classify",
    "decode_topic_payload",
    "merge",
    "normalize_topic_name",
]
