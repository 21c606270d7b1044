"""Custom exception hierarchy for pylivetiming."""

from __future__ import annotations


class LiveTimingError(Exception):
    """Base exception for all pylivetiming errors."""


class ConfigError(LiveTimingError):
    """Invalid or missing configuration."""


class DecodeError(LiveTimingError):
    """A compressed topic payload could not be decoded.

    Raised when base64 decoding, raw inflate, or JSON parsing of a
    ``.z`` topic payload fails.
    """


class MergeError(LiveTimingError):
    """An update could not be folded into the stored topic value.

    Covers type-incompatible merges (named keys patched onto an array),
    invalid array indices, and stored values of a non-JSON kind.
    """


class TransportError(LiveTimingError):
    """Hub-level failure (negotiate, websocket, invocation)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        method: str = "",
    ) -> None:
        self.status_code = status_code
        self.method = method
        super().__init__(message)

    @property
    def is_unauthorized(self) -> bool:
        """Whether the server refused the connection for lack of credentials."""
        return self.status_code in (401, 403)
