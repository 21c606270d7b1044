"""High-level async client for the live timing feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import aiohttp
from pydantic import ValidationError

from pylivetiming._hub import HubConnection
from pylivetiming._transport import HubTransport
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import LiveTimingError, TransportError
from pylivetiming.models import LiveTimingBaseModel, parse_topic
from pylivetiming.session import SessionState, SubscriptionSession
from pylivetiming.state.events import FeedUpdate
from pylivetiming.state.store import ReconciliationStore

_logger = logging.getLogger(__name__)


def _disconnect_reason(error: BaseException | None) -> str:
    if error is None:
        return "end"
    if isinstance(error, TransportError) and error.is_unauthorized:
        return "unauthorized"
    return "failed"


class LiveTimingClient:
    """Async client mirroring the live timing feed.

    Usage::

        async with LiveTimingClient(LiveTimingConfig()) as client:
            await client.start()
            weather = client.get_model("WeatherData")
    """

    def __init__(
        self,
        config: LiveTimingConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: HubTransport | None = None,
        on_update: Callable[[FeedUpdate], None] | None = None,
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[str], None] | None = None,
        on_reconnecting: Callable[[int], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._config = config or LiveTimingConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._session: SubscriptionSession | None = None
        self._store = ReconciliationStore()
        self._on_update = on_update
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._on_reconnecting = on_reconnecting
        self._on_error = on_error
        self._closed = asyncio.Event()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LiveTimingClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HubConnection.from_config(self._config, self._http_session)
        self._session = self._build_session(self._transport)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        try:
            await self.stop()
        finally:
            if not self._external_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None

    def _build_session(self, transport: HubTransport) -> SubscriptionSession:
        transport.on_reconnecting(self._handle_reconnecting)
        return SubscriptionSession(
            transport,
            self._config.topics,
            store=self._store,
            on_update=self._on_update,
            on_state_change=self._handle_state_change,
            on_error=self._report_error,
        )

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def start(self) -> Mapping[str, Any]:
        """Connect, subscribe to the configured topics and seed the store.

        Returns
        -------
        Mapping
            Read-only snapshot of the store after seeding.
        """
        await self._require_session().start()
        return self._store.snapshot()

    async def stop(self) -> None:
        """Unsubscribe (best effort) and close the connection."""
        if self._session is not None:
            await self._session.stop()

    async def wait_closed(self) -> None:
        """Wait until the session reaches ``CLOSED`` (stop or give-up)."""
        self._require_session()
        await self._closed.wait()

    async def subscribe(self, topics: Iterable[str]) -> dict[str, Any]:
        """Subscribe to additional topics; returns their seeded values."""
        return await self._require_session().subscribe(topics)

    async def unsubscribe(self, topics: Iterable[str]) -> Any:
        """Unsubscribe from topics; their last known values stay readable."""
        return await self._require_session().unsubscribe(topics)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def config(self) -> LiveTimingConfig:
        return self._config

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def connection_id(self) -> str | None:
        return getattr(self._transport, "connection_id", None)

    @property
    def current(self) -> Mapping[str, Any]:
        """Read-only snapshot of every mirrored topic."""
        return self._store.snapshot()

    def get(self, name: str, default: Any = None) -> Any:
        """Current value of one topic (raw or normalized name)."""
        return self._store.get(name, default)

    def get_model(self, name: str) -> LiveTimingBaseModel | None:
        """Current value of a documented topic as a typed model.

        Returns ``None`` when the topic has no model, has not been received,
        or its current value does not fit the model.
        """
        value = self._store.get(name)
        try:
            return parse_topic(name, value)
        except ValidationError:
            _logger.debug("Topic %s does not match its model", name, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> SubscriptionSession:
        if self._session is None:
            raise LiveTimingError("Client not initialized. Use 'async with LiveTimingClient(...) as client:'")
        return self._session

    def _handle_state_change(self, old: SessionState, new: SessionState) -> None:
        if new == SessionState.CONNECTED:
            self._safe_call(self._on_connected)
        elif new == SessionState.CLOSED and old != SessionState.IDLE:
            reason = _disconnect_reason(self._session.close_error if self._session is not None else None)
            self._safe_call(self._on_disconnected, reason)
        if new == SessionState.CLOSED:
            self._closed.set()

    def _handle_reconnecting(self, attempt: int, error: BaseException | None = None) -> None:
        self._safe_call(self._on_reconnecting, attempt)

    def _report_error(self, exc: BaseException) -> None:
        self._safe_call(self._on_error, exc)

    @staticmethod
    def _safe_call(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            _logger.debug("Client callback failed", exc_info=True)
