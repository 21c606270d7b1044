"""Client configuration for pylivetiming."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pylivetiming._constants import BASE_URL, DEFAULT_RECONNECT_DELAYS, DEFAULT_TOPICS
from pylivetiming.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class LiveTimingConfig:
    """Client configuration.

    Parameters
    ----------
    url : str
        SignalR Core hub URL. Defaults to the public F1 live timing hub.
    topics : tuple of str
        Raw topic names to subscribe to, including any ``.z`` suffix.
    automatic_reconnect : bool
        Reconnect automatically after an unexpected connection loss.
    reconnect_delays : tuple of float
        Seconds to wait before each reconnect attempt. The connection is
        closed for good once the schedule is exhausted.
    keepalive_interval : float
        Seconds between client pings.
    server_timeout : float
        Seconds without any server message before the connection is
        considered lost.
    invoke_timeout : float
        Seconds to wait for a hub method (``Subscribe``/``Unsubscribe``)
        to complete.
    handshake_timeout : float
        Seconds to wait for the protocol handshake response.
    """

    url: str = BASE_URL
    topics: tuple[str, ...] = DEFAULT_TOPICS
    automatic_reconnect: bool = True
    reconnect_delays: tuple[float, ...] = DEFAULT_RECONNECT_DELAYS
    keepalive_interval: float = 15.0
    server_timeout: float = 30.0
    invoke_timeout: float = 30.0
    handshake_timeout: float = 15.0

    def __post_init__(self) -> None:
        if not self.url.strip():
            raise ConfigError("url must be non-empty")
        if any(delay < 0 for delay in self.reconnect_delays):
            raise ConfigError("reconnect_delays must not contain negative values")
        for name in ("keepalive_interval", "server_timeout", "invoke_timeout", "handshake_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> LiveTimingConfig:
        """Create configuration from environment variables.

        Reads the optional ``LIVETIMING_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        LiveTimingConfig
            Populated configuration.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        url = env.get("LIVETIMING_URL")
        if url is not None:
            config_kwargs["url"] = url.strip()

        topics_env = env.get("LIVETIMING_TOPICS")
        if topics_env is not None:
            config_kwargs["topics"] = _env_list(topics_env)

        if "automatic_reconnect" not in overrides:
            config_kwargs["automatic_reconnect"] = _env_bool(env.get("LIVETIMING_AUTOMATIC_RECONNECT"), True)

        delays_env = env.get("LIVETIMING_RECONNECT_DELAYS")
        if delays_env is not None and "reconnect_delays" not in overrides:
            config_kwargs["reconnect_delays"] = tuple(
                _env_float("LIVETIMING_RECONNECT_DELAYS", item) for item in _env_list(delays_env)
            )

        _ENV_FLOAT_MAP = {
            "LIVETIMING_KEEPALIVE_INTERVAL": "keepalive_interval",
            "LIVETIMING_SERVER_TIMEOUT": "server_timeout",
            "LIVETIMING_INVOKE_TIMEOUT": "invoke_timeout",
            "LIVETIMING_HANDSHAKE_TIMEOUT": "handshake_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_float(env_key, val)

        if "topics" in overrides:
            overrides["topics"] = tuple(overrides["topics"])

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
