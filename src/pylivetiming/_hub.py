"""SignalR Core hub connection over aiohttp websockets.

Implements the JSON hub protocol subset used by the live timing service:
negotiate, handshake, invocations (server -> client), completions for
client invocations, pings and close messages, plus automatic reconnect
driven by a fixed delay schedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import Mapping, Sequence
from enum import IntEnum, StrEnum
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from pylivetiming._constants import DEFAULT_RECONNECT_DELAYS, USER_AGENT
from pylivetiming._redact import summarize_for_log
from pylivetiming._transport import (
    CloseHandler,
    InvocationHandler,
    ReconnectedHandler,
    ReconnectingHandler,
)
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import TransportError

_logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\x1e"
_HANDSHAKE = {"protocol": "json", "version": 1}


class MessageType(IntEnum):
    INVOCATION = 1
    STREAM_ITEM = 2
    COMPLETION = 3
    STREAM_INVOCATION = 4
    CANCEL_INVOCATION = 5
    PING = 6
    CLOSE = 7


class HubConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTING = "disconnecting"


def encode_message(message: Mapping[str, Any]) -> str:
    """Serialize one hub message, including the trailing record separator."""
    return json.dumps(message, separators=(",", ":")) + RECORD_SEPARATOR


def parse_messages(text: str) -> list[dict[str, Any]]:
    """Split a websocket frame into hub messages.

    Raises
    ------
    TransportError
        If a record is not a JSON object.
    """
    messages: list[dict[str, Any]] = []
    for record in text.split(RECORD_SEPARATOR):
        if not record.strip():
            continue
        try:
            parsed = json.loads(record)
        except json.JSONDecodeError as exc:
            raise TransportError(f"Invalid hub message: {record[:64]!r}") from exc
        if not isinstance(parsed, dict):
            raise TransportError(f"Hub message is not an object: {record[:64]!r}")
        messages.append(parsed)
    return messages


def negotiate_url(url: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append(("negotiateVersion", "1"))
    path = parts.path.rstrip("/") + "/negotiate"
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), ""))


def websocket_url(url: str, connection_token: str) -> str:
    parts = urlsplit(url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append(("id", connection_token))
    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query), ""))


class HubConnection:
    """Asyncio hub connection with automatic reconnect.

    Usage::

        hub = HubConnection(url, http_session)
        hub.on("feed", handle_feed)
        await hub.start()
        snapshot = await hub.invoke("Subscribe", ["WeatherData"])
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        automatic_reconnect: bool = True,
        reconnect_delays: Sequence[float] = DEFAULT_RECONNECT_DELAYS,
        keepalive_interval: float = 15.0,
        server_timeout: float = 30.0,
        invoke_timeout: float = 30.0,
        handshake_timeout: float = 15.0,
    ) -> None:
        self._url = url
        self._http = http_session
        self._automatic_reconnect = automatic_reconnect
        self._reconnect_delays = tuple(reconnect_delays)
        self._keepalive_interval = keepalive_interval
        self._server_timeout = server_timeout
        self._invoke_timeout = invoke_timeout
        self._handshake_timeout = handshake_timeout

        self._state = HubConnectionState.DISCONNECTED
        self._connection_id: str | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._handler_tasks: set[asyncio.Task[Any]] = set()
        self._buffered_text = ""
        self._invocation_id = 0
        self._pending: dict[str, tuple[str, asyncio.Future[Any]]] = {}
        self._stopping = False
        self._close_fired = False
        self._close_error: BaseException | None = None
        self._allow_reconnect = True

        self._handlers: dict[str, list[InvocationHandler]] = {}
        self._reconnecting_handlers: list[ReconnectingHandler] = []
        self._reconnected_handlers: list[ReconnectedHandler] = []
        self._close_handlers: list[CloseHandler] = []

    @classmethod
    def from_config(cls, config: LiveTimingConfig, http_session: aiohttp.ClientSession) -> HubConnection:
        return cls(
            config.url,
            http_session,
            automatic_reconnect=config.automatic_reconnect,
            reconnect_delays=config.reconnect_delays,
            keepalive_interval=config.keepalive_interval,
            server_timeout=config.server_timeout,
            invoke_timeout=config.invoke_timeout,
            handshake_timeout=config.handshake_timeout,
        )

    # ------------------------------------------------------------------
    # Properties and handler registration
    # ------------------------------------------------------------------

    @property
    def state(self) -> HubConnectionState:
        return self._state

    @property
    def connection_id(self) -> str | None:
        return self._connection_id

    @property
    def is_connected(self) -> bool:
        return self._state == HubConnectionState.CONNECTED

    def on(self, target: str, handler: InvocationHandler) -> None:
        """Register a handler for server-to-client invocations of *target*."""
        self._handlers.setdefault(target.lower(), []).append(handler)

    def on_reconnecting(self, handler: ReconnectingHandler) -> None:
        self._reconnecting_handlers.append(handler)

    def on_reconnected(self, handler: ReconnectedHandler) -> None:
        self._reconnected_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handlers.append(handler)

    # ------------------------------------------------------------------
    # Life cycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Negotiate, open the websocket and complete the handshake.

        Raises
        ------
        TransportError
            If the connection cannot be established.
        """
        if self._state != HubConnectionState.DISCONNECTED:
            raise TransportError(f"Cannot start a hub connection in state {self._state}", method="start")
        self._stopping = False
        self._close_fired = False
        self._state = HubConnectionState.CONNECTING
        try:
            await self._connect()
        except BaseException:
            self._state = HubConnectionState.DISCONNECTED
            raise
        self._state = HubConnectionState.CONNECTED
        _logger.debug("Hub connected url=%s connection_id=%s", self._url, self._connection_id)

    async def stop(self) -> None:
        """Close the connection and fail any pending invocations."""
        if self._state == HubConnectionState.DISCONNECTED and self._close_fired:
            return
        self._stopping = True
        self._state = HubConnectionState.DISCONNECTING
        _logger.debug("Hub stop requested")

        current = asyncio.current_task()
        for task in (self._reconnect_task, self._ping_task, self._receive_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._reconnect_task = None
        self._ping_task = None
        self._receive_task = None

        await self._teardown(TransportError("Hub connection stopped"))
        self._state = HubConnectionState.DISCONNECTED
        self._fire_close(None)

    async def invoke(self, method: str, *args: Any) -> Any:
        """Invoke a hub method and wait for its completion.

        Raises
        ------
        TransportError
            If the connection is down, the server reports an error, or no
            completion arrives within ``invoke_timeout``.
        """
        if not self.is_connected or self._ws is None:
            raise TransportError(f"Cannot invoke {method}: connection is {self._state}", method=method)

        self._invocation_id += 1
        invocation_id = str(self._invocation_id)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[invocation_id] = (method, future)
        try:
            await self._send(
                {
                    "type": int(MessageType.INVOCATION),
                    "invocationId": invocation_id,
                    "target": method,
                    "arguments": list(args),
                }
            )
            return await asyncio.wait_for(future, self._invoke_timeout)
        except TimeoutError as exc:
            raise TransportError(
                f"{method} did not complete within {self._invoke_timeout}s",
                method=method,
            ) from exc
        finally:
            self._pending.pop(invocation_id, None)

    # ------------------------------------------------------------------
    # Connection establishment
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        token = await self._negotiate()
        url = websocket_url(self._url, token)
        _logger.debug("Opening hub websocket %s", self._url)
        try:
            ws = await self._http.ws_connect(url, headers={"User-Agent": USER_AGENT})
        except aiohttp.WSServerHandshakeError as exc:
            raise TransportError(
                f"Websocket upgrade refused: HTTP {exc.status}",
                status_code=exc.status,
                method="connect",
            ) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Websocket connection failed: {exc}", method="connect") from exc

        try:
            await self._handshake(ws)
        except BaseException:
            await ws.close()
            raise

        self._ws = ws
        self._allow_reconnect = True
        self._close_error = None
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        self._ping_task = asyncio.create_task(self._ping_loop(ws))

    async def _negotiate(self) -> str:
        url = negotiate_url(self._url)
        _logger.debug("POST %s", url)
        try:
            async with self._http.post(url, headers={"User-Agent": USER_AGENT}) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise TransportError(
                        f"HTTP {resp.status} from negotiate: {text[:200]}",
                        status_code=resp.status,
                        method="negotiate",
                    )
        except TransportError:
            raise
        except aiohttp.ClientError as exc:
            raise TransportError(f"Negotiate request failed: {exc}", method="negotiate") from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(f"Invalid JSON from negotiate: {text[:200]}", method="negotiate") from exc
        if not isinstance(body, dict):
            raise TransportError("Negotiate response is not an object", method="negotiate")

        _logger.debug("Negotiate response %s", summarize_for_log(body))

        if body.get("error"):
            raise TransportError(f"Negotiate failed: {body['error']}", method="negotiate")
        if body.get("url"):
            raise TransportError("Negotiate redirects are not supported", method="negotiate")

        transports = body.get("availableTransports")
        if isinstance(transports, list) and transports:
            names = {t.get("transport") for t in transports if isinstance(t, dict)}
            if "WebSockets" not in names:
                raise TransportError("Server does not offer the WebSockets transport", method="negotiate")

        connection_id = body.get("connectionId")
        token = body.get("connectionToken") or connection_id
        if not isinstance(token, str) or not token:
            raise TransportError("Negotiate response missing connectionToken", method="negotiate")
        self._connection_id = connection_id if isinstance(connection_id, str) else None
        return token

    async def _handshake(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        await ws.send_str(encode_message(_HANDSHAKE))
        try:
            msg = await ws.receive(timeout=self._handshake_timeout)
        except TimeoutError as exc:
            raise TransportError("Handshake timed out", method="handshake") from exc

        if msg.type not in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            raise TransportError(f"Unexpected handshake frame {msg.type!r}", method="handshake")
        text = msg.data if isinstance(msg.data, str) else msg.data.decode("utf-8")

        head, separator, rest = text.partition(RECORD_SEPARATOR)
        if not separator:
            raise TransportError("Incomplete handshake response", method="handshake")
        try:
            response = json.loads(head)
        except json.JSONDecodeError as exc:
            raise TransportError(f"Invalid handshake response: {head[:64]!r}", method="handshake") from exc
        if isinstance(response, dict) and response.get("error"):
            raise TransportError(f"Handshake rejected: {response['error']}", method="handshake")
        self._buffered_text = rest

    # ------------------------------------------------------------------
    # Message loop
    # ------------------------------------------------------------------

    async def _send(self, message: Mapping[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise TransportError("Websocket is not open", method=str(message.get("target", "")))
        try:
            await ws.send_str(encode_message(message))
        except (aiohttp.ClientError, ConnectionResetError) as exc:
            raise TransportError(f"Websocket send failed: {exc}", method=str(message.get("target", ""))) from exc

    async def _ping_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self._keepalive_interval)
            try:
                await ws.send_str(encode_message({"type": int(MessageType.PING)}))
            except (aiohttp.ClientError, ConnectionResetError):
                _logger.debug("Hub ping failed", exc_info=True)
                return

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        error: BaseException | None = None
        try:
            if self._buffered_text:
                text, self._buffered_text = self._buffered_text, ""
                if not self._process_text(text):
                    return
            while True:
                try:
                    msg = await ws.receive(timeout=self._server_timeout)
                except TimeoutError:
                    error = TransportError(f"No message from server within {self._server_timeout}s")
                    return

                if msg.type == aiohttp.WSMsgType.TEXT:
                    text = msg.data
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    text = msg.data.decode("utf-8", errors="replace")
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = TransportError(f"Websocket error: {ws.exception()}")
                    return
                else:
                    error = TransportError(f"Websocket closed by server ({msg.type.name})")
                    return

                try:
                    if not self._process_text(text):
                        return
                except TransportError as exc:
                    error = exc
                    return
        finally:
            if not self._stopping:
                lost_error = self._close_error or error
                self._reconnect_task = asyncio.create_task(self._connection_lost(lost_error))

    def _process_text(self, text: str) -> bool:
        """Handle all messages in a frame; ``False`` when the server closed."""
        for message in parse_messages(text):
            if not self._handle_message(message):
                return False
        return True

    def _handle_message(self, message: dict[str, Any]) -> bool:
        msg_type = message.get("type")

        if msg_type == MessageType.INVOCATION:
            target = str(message.get("target") or "")
            arguments = message.get("arguments") or []
            _logger.debug("Hub invocation target=%s arguments=%s", target, summarize_for_log(arguments))
            for handler in list(self._handlers.get(target.lower(), [])):
                self._run_handler(handler, *arguments)
            return True

        if msg_type == MessageType.COMPLETION:
            invocation_id = str(message.get("invocationId"))
            pending = self._pending.get(invocation_id)
            if pending is None:
                _logger.debug("Completion for unknown invocation %s", invocation_id)
                return True
            method, future = pending
            if future.done():
                return True
            if message.get("error"):
                future.set_exception(TransportError(f"{method} failed: {message['error']}", method=method))
            else:
                future.set_result(message.get("result"))
            return True

        if msg_type == MessageType.PING:
            return True

        if msg_type == MessageType.CLOSE:
            self._allow_reconnect = bool(message.get("allowReconnect", False))
            reason = message.get("error")
            self._close_error = TransportError(f"Server closed the connection: {reason}") if reason else None
            _logger.debug("Hub close message allow_reconnect=%s error=%s", self._allow_reconnect, reason)
            return False

        _logger.debug("Ignoring hub message type=%s", msg_type)
        return True

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    async def _teardown(self, error: BaseException) -> None:
        ping = self._ping_task
        self._ping_task = None
        if ping is not None and ping is not asyncio.current_task() and not ping.done():
            ping.cancel()

        for method, future in list(self._pending.values()):
            if not future.done():
                future.set_exception(TransportError(f"{method} aborted: {error}", method=method))
        self._pending.clear()

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            with contextlib.suppress(aiohttp.ClientError, ConnectionResetError):
                await ws.close()

    async def _connection_lost(self, error: BaseException | None) -> None:
        _logger.warning("Hub connection lost: %s", error or "closed by server")
        await self._teardown(error or TransportError("Connection lost"))

        if self._stopping:
            return
        if not (self._automatic_reconnect and self._allow_reconnect and self._reconnect_delays):
            self._state = HubConnectionState.DISCONNECTED
            self._fire_close(error)
            return

        self._state = HubConnectionState.RECONNECTING
        last_error = error
        for attempt, delay in enumerate(self._reconnect_delays, start=1):
            self._fire(self._reconnecting_handlers, attempt, last_error)
            await asyncio.sleep(delay)
            if self._stopping:
                return
            try:
                await self._connect()
            except TransportError as exc:
                last_error = exc
                _logger.debug("Reconnect attempt %d failed: %s", attempt, exc)
                if exc.is_unauthorized:
                    break
                continue
            self._state = HubConnectionState.CONNECTED
            _logger.debug("Hub reconnected connection_id=%s", self._connection_id)
            self._fire(self._reconnected_handlers, self._connection_id)
            return

        self._state = HubConnectionState.DISCONNECTED
        self._fire_close(last_error)

    # ------------------------------------------------------------------
    # Handler dispatch
    # ------------------------------------------------------------------

    def _fire_close(self, error: BaseException | None) -> None:
        if self._close_fired:
            return
        self._close_fired = True
        self._fire(self._close_handlers, error)

    def _fire(self, handlers: Sequence[Any], *args: Any) -> None:
        for handler in list(handlers):
            self._run_handler(handler, *args)

    def _run_handler(self, handler: Any, *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception:
            _logger.debug("Hub handler %r failed", handler, exc_info=True)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Future[Any]) -> None:
        self._handler_tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.debug("Async hub handler failed", exc_info=exc)
