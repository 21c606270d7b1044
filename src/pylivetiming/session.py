"""Subscription session: subscribe/seed protocol and reconnect handling."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from pylivetiming._constants import FEED_TARGET, SUBSCRIBE_METHOD, UNSUBSCRIBE_METHOD
from pylivetiming._redact import summarize_for_log
from pylivetiming._transport import HubTransport
from pylivetiming.exceptions import DecodeError, LiveTimingError, MergeError, TransportError
from pylivetiming.state.events import FeedUpdate, UpdateEvent
from pylivetiming.state.store import ReconciliationStore

_logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


def _unique(topics: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for topic in topics:
        name = topic.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


class SubscriptionSession:
    """Keeps a :class:`ReconciliationStore` in sync with a hub subscription.

    The session subscribes once connected, seeds the store from the
    subscription snapshot, applies every ``feed`` invocation while
    connected, and reseeds after the transport reconnects. Values stay in
    the store across a disconnect (flagged stale) until the fresh snapshot
    replaces them.

    Snapshot responses that arrive after the session has moved on (closed,
    or a newer connection started) are discarded instead of applied.
    """

    def __init__(
        self,
        transport: HubTransport,
        topics: Iterable[str],
        *,
        store: ReconciliationStore | None = None,
        on_update: Callable[[FeedUpdate], None] | None = None,
        on_state_change: Callable[[SessionState, SessionState], None] | None = None,
        on_error: Callable[[LiveTimingError], None] | None = None,
    ) -> None:
        self._transport = transport
        self._topics = _unique(topics)
        self._store = store if store is not None else ReconciliationStore()
        self._on_update = on_update
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._state = SessionState.IDLE
        # Bumped whenever a connection ends; in-flight results from an older
        # epoch are dropped.
        self._epoch = 0
        self._close_error: BaseException | None = None

        transport.on(FEED_TARGET, self.handle_feed)
        transport.on_reconnecting(self.handle_reconnecting)
        transport.on_reconnected(self.handle_reconnected)
        transport.on_close(self.handle_close)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    @property
    def topics(self) -> tuple[str, ...]:
        return tuple(self._topics)

    @property
    def close_error(self) -> BaseException | None:
        """Error that closed the session; ``None`` after a clean stop."""
        return self._close_error

    # ------------------------------------------------------------------
    # Life cycle
    # ------------------------------------------------------------------

    async def start(self) -> dict[str, Any]:
        """Connect the transport, subscribe and seed the store.

        On failure the error is reported through ``on_error``, the transport
        is stopped and the session ends ``CLOSED``.

        Returns
        -------
        dict
            The seeded values by normalized topic name (empty if the
            snapshot was discarded because the session was stopped).

        Raises
        ------
        TransportError
            If the transport cannot connect or the subscription fails.
        DecodeError
            If a compressed topic in the snapshot cannot be decoded.
        """
        if self._state != SessionState.IDLE:
            raise LiveTimingError(f"Session cannot start from state {self._state}")
        self._set_state(SessionState.CONNECTING)
        try:
            await self._transport.start()
        except TransportError as exc:
            self._close(exc)
            raise
        if self._state != SessionState.CONNECTING:
            # Stopped while the transport was connecting.
            return {}
        self._set_state(SessionState.CONNECTED)
        try:
            return await self._subscribe_and_seed(self._topics)
        except LiveTimingError as exc:
            _logger.warning("Initial subscribe failed: %s", exc)
            self._close(exc)
            await self._transport.stop()
            raise

    async def stop(self) -> None:
        """Close the session; safe to call at any time and more than once."""
        if self._state == SessionState.CLOSED:
            return
        was_connected = self._state == SessionState.CONNECTED
        self._epoch += 1
        self._close_error = None
        self._set_state(SessionState.CLOSED)

        if was_connected and self._topics and self._transport.is_connected:
            try:
                await self._transport.invoke(UNSUBSCRIBE_METHOD, list(self._topics))
            except LiveTimingError as exc:
                _logger.debug("Best-effort unsubscribe failed: %s", exc)
        await self._transport.stop()

    async def subscribe(self, topics: Iterable[str]) -> dict[str, Any]:
        """Add topics to the subscription and seed their snapshot."""
        requested = _unique(topics)
        if not requested:
            return {}
        self._require_connected(SUBSCRIBE_METHOD)
        self._topics = _unique([*self._topics, *requested])
        return await self._subscribe_and_seed(requested)

    async def unsubscribe(self, topics: Iterable[str]) -> Any:
        """Drop topics from the subscription.

        Stored values for those topics are kept as their last known value.
        """
        requested = _unique(topics)
        if not requested:
            return None
        self._require_connected(UNSUBSCRIBE_METHOD)
        self._topics = [topic for topic in self._topics if topic not in requested]
        return await self._transport.invoke(UNSUBSCRIBE_METHOD, requested)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def handle_feed(self, topic: str, payload: Any = None, timestamp: Any = None, *_extra: Any) -> FeedUpdate | None:
        """Apply one ``feed`` invocation and publish the result.

        Decode and merge failures are reported through ``on_error``; the
        topic keeps its previous value.
        """
        if self._state != SessionState.CONNECTED:
            _logger.debug("Discarding feed for %s in state %s", topic, self._state)
            return None

        try:
            event = UpdateEvent(topic=topic, payload=payload, timestamp=timestamp)
        except ValidationError as exc:
            _logger.warning("Discarding malformed feed event topic=%r: %s", topic, exc)
            return None

        try:
            name, value = self._store.apply(event)
        except (DecodeError, MergeError) as exc:
            _logger.warning("Update for %s not applied: %s", event.topic, exc)
            _logger.debug("Rejected payload %s", summarize_for_log(event.payload))
            self._notify(self._on_error, exc)
            return None

        update = FeedUpdate(
            name=name,
            value=value,
            timestamp=event.timestamp,
            topic=event.topic,
            payload=event.payload,
        )
        self._notify(self._on_update, update)
        return update

    def handle_reconnecting(self, attempt: int = 1, error: BaseException | None = None) -> None:
        if self._state == SessionState.CLOSED:
            return
        if self._state != SessionState.RECONNECTING:
            _logger.info("Connection lost, reconnecting: %s", error)
            self._epoch += 1
            self._store.mark_stale()
            self._set_state(SessionState.RECONNECTING)
        _logger.debug("Reconnect attempt %d", attempt)

    async def handle_reconnected(self, connection_id: str | None = None) -> None:
        if self._state == SessionState.CLOSED:
            return
        _logger.info("Reconnected (connection_id=%s), resubscribing", connection_id)
        self._set_state(SessionState.CONNECTED)
        try:
            await self._subscribe_and_seed(self._topics)
        except LiveTimingError as exc:
            _logger.warning("Resubscribe after reconnect failed: %s", exc)
            self._notify(self._on_error, exc)

    def handle_close(self, error: BaseException | None = None) -> None:
        if self._state == SessionState.CLOSED:
            return
        if error is not None:
            _logger.warning("Connection closed: %s", error)
        self._epoch += 1
        self._close_error = error
        self._set_state(SessionState.CLOSED)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _subscribe_and_seed(self, topics: list[str]) -> dict[str, Any]:
        if not topics:
            return {}
        epoch = self._epoch
        try:
            response = await self._transport.invoke(SUBSCRIBE_METHOD, list(topics))
        except TransportError:
            if self._is_current(epoch):
                raise
            _logger.debug("Subscribe aborted after the session moved to %s", self._state)
            return {}

        if not self._is_current(epoch):
            _logger.debug("Discarding subscribe response received in state %s", self._state)
            return {}
        if response is None:
            return {}
        if not isinstance(response, Mapping):
            raise TransportError(
                f"Subscribe response is not an object: {type(response).__name__}",
                method=SUBSCRIBE_METHOD,
            )
        return self._store.seed(response)

    def _close(self, error: LiveTimingError) -> None:
        self._notify(self._on_error, error)
        self._epoch += 1
        self._close_error = error
        self._set_state(SessionState.CLOSED)

    def _is_current(self, epoch: int) -> bool:
        return self._state == SessionState.CONNECTED and epoch == self._epoch

    def _require_connected(self, method: str) -> None:
        if self._state != SessionState.CONNECTED:
            raise TransportError(f"Cannot call {method} while {self._state}", method=method)

    def _set_state(self, new: SessionState) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        _logger.debug("Session state %s -> %s", old, new)
        self._notify(self._on_state_change, old, new)

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            _logger.debug("Session observer callback failed", exc_info=True)
