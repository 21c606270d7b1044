from __future__ import annotations

import asyncio
import json
from typing import Any, NamedTuple

import aiohttp
import pytest

from pylivetiming._hub import RECORD_SEPARATOR, HubConnection, HubConnectionState, encode_message, parse_messages
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import TransportError

URL = "https://livetiming.example.com/signalrcore"


class FakeMessage(NamedTuple):
    type: aiohttp.WSMsgType
    data: Any
    extra: Any = None


class FakeWebSocket:
    """Answers the handshake and completes invocations of known methods."""

    def __init__(self, results: dict[str, Any] | None = None, errors: dict[str, str] | None = None) -> None:
        self.results = results or {}
        self.errors = errors or {}
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue[FakeMessage] = asyncio.Queue()

    async def send_str(self, data: str) -> None:
        for message in parse_messages(data):
            self.sent.append(message)
            if message.get("protocol") == "json":
                self.push("{}" + RECORD_SEPARATOR)
                continue
            if message.get("type") != 1 or "invocationId" not in message:
                continue
            target = message["target"]
            if target in self.errors:
                self.push_message({"type": 3, "invocationId": message["invocationId"], "error": self.errors[target]})
            elif target in self.results:
                self.push_message({"type": 3, "invocationId": message["invocationId"], "result": self.results[target]})

    def push(self, text: str) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def push_message(self, message: dict[str, Any]) -> None:
        self.push(encode_message(message))

    async def receive(self, timeout: float | None = None) -> FakeMessage:
        return await self._incoming.get()

    async def close(self) -> bool:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED, None))
        return True

    def exception(self) -> BaseException | None:
        return None


class FakeResponse:
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


def _negotiation(connection_id: str) -> tuple[int, str]:
    body = {
        "negotiateVersion": 1,
        "connectionId": connection_id,
        "connectionToken": f"token-{connection_id}",
        "availableTransports": [{"transport": "WebSockets", "transferFormats": ["Text"]}],
    }
    return 200, json.dumps(body)


class FakeHttpSession:
    def __init__(self, negotiations: list[tuple[int, str]], sockets: list[FakeWebSocket]) -> None:
        self.negotiations = list(negotiations)
        self.sockets = list(sockets)
        self.posts: list[str] = []
        self.ws_urls: list[str] = []

    def post(self, url: str, headers: dict[str, str] | None = None) -> FakeResponse:
        self.posts.append(url)
        status, body = self.negotiations.pop(0)
        return FakeResponse(status, body)

    async def ws_connect(self, url: str, headers: dict[str, str] | None = None) -> FakeWebSocket:
        self.ws_urls.append(url)
        return self.sockets.pop(0)


def _hub(http: FakeHttpSession, **kwargs: Any) -> HubConnection:
    kwargs.setdefault("keepalive_interval", 60.0)
    kwargs.setdefault("server_timeout", 60.0)
    return HubConnection(URL, http, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_start_negotiates_and_handshakes() -> None:
    ws = FakeWebSocket()
    http = FakeHttpSession([_negotiation("conn-1")], [ws])
    hub = _hub(http)

    await hub.start()
    try:
        assert hub.state is HubConnectionState.CONNECTED
        assert hub.connection_id == "conn-1"
        assert http.posts == [f"{URL}/negotiate?negotiateVersion=1"]
        assert http.ws_urls == ["wss://livetiming.example.com/signalrcore?id=token-conn-1"]
        assert ws.sent[0] == {"protocol": "json", "version": 1}
    finally:
        await hub.stop()


@pytest.mark.asyncio
async def test_invoke_returns_completion_result() -> None:
    snapshot = {"WeatherData": {"AirTemp": "20"}}
    ws = FakeWebSocket(results={"Subscribe": snapshot})
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [ws]))
    await hub.start()
    try:
        result = await hub.invoke("Subscribe", ["WeatherData"])
    finally:
        await hub.stop()

    assert result == snapshot
    assert ws.sent[1] == {"type": 1, "invocationId": "1", "target": "Subscribe", "arguments": [["WeatherData"]]}


@pytest.mark.asyncio
async def test_invoke_error_completion_raises() -> None:
    ws = FakeWebSocket(errors={"Subscribe": "unknown topic"})
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [ws]))
    await hub.start()
    try:
        with pytest.raises(TransportError, match="unknown topic") as exc_info:
            await hub.invoke("Subscribe", ["Nope"])
    finally:
        await hub.stop()

    assert exc_info.value.method == "Subscribe"


@pytest.mark.asyncio
async def test_invoke_times_out() -> None:
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [FakeWebSocket()]), invoke_timeout=0.05)
    await hub.start()
    try:
        with pytest.raises(TransportError, match="did not complete"):
            await hub.invoke("Subscribe", ["WeatherData"])
    finally:
        await hub.stop()


@pytest.mark.asyncio
async def test_invoke_requires_connection() -> None:
    hub = _hub(FakeHttpSession([], []))

    with pytest.raises(TransportError, match="Cannot invoke"):
        await hub.invoke("Subscribe", ["WeatherData"])


@pytest.mark.asyncio
async def test_feed_invocations_reach_sync_and_async_handlers() -> None:
    ws = FakeWebSocket()
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [ws]))
    received: list[tuple[Any, ...]] = []
    done = asyncio.Event()

    async def async_handler(*args: Any) -> None:
        received.append(("async", *args))
        done.set()

    hub.on("feed", lambda *args: received.append(("sync", *args)))
    hub.on("Feed", async_handler)
    await hub.start()
    try:
        ws.push_message({"type": 1, "target": "feed", "arguments": ["Heartbeat", {"Utc": "x"}, "ts"]})
        await asyncio.wait_for(done.wait(), timeout=1)
    finally:
        await hub.stop()

    assert received == [("sync", "Heartbeat", {"Utc": "x"}, "ts"), ("async", "Heartbeat", {"Utc": "x"}, "ts")]


@pytest.mark.asyncio
async def test_stop_fires_close_once_without_error() -> None:
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [FakeWebSocket()]))
    closes: list[BaseException | None] = []
    hub.on_close(closes.append)
    await hub.start()

    await hub.stop()
    await hub.stop()

    assert closes == [None]
    assert hub.state is HubConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_server_close_without_reconnect_fires_close_with_error() -> None:
    ws = FakeWebSocket()
    hub = _hub(FakeHttpSession([_negotiation("conn-1")], [ws]), automatic_reconnect=False)
    closed = asyncio.Event()
    errors: list[BaseException | None] = []

    def on_close(error: BaseException | None) -> None:
        errors.append(error)
        closed.set()

    hub.on_close(on_close)
    await hub.start()

    ws.push_message({"type": 7, "error": "Session ended"})
    await asyncio.wait_for(closed.wait(), timeout=1)

    assert isinstance(errors[0], TransportError)
    assert "Session ended" in str(errors[0])
    assert hub.state is HubConnectionState.DISCONNECTED
    await hub.stop()
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_reconnects_after_connection_loss() -> None:
    first = FakeWebSocket()
    second = FakeWebSocket(results={"Subscribe": {}})
    http = FakeHttpSession([_negotiation("conn-1"), _negotiation("conn-2")], [first, second])
    hub = _hub(http, reconnect_delays=(0.0,))
    attempts: list[tuple[int, BaseException | None]] = []
    reconnected = asyncio.Event()
    ids: list[str | None] = []

    def on_reconnected(connection_id: str | None) -> None:
        ids.append(connection_id)
        reconnected.set()

    hub.on_reconnecting(lambda attempt, error: attempts.append((attempt, error)))
    hub.on_reconnected(on_reconnected)
    await hub.start()
    try:
        first.push_message({"type": 7, "allowReconnect": True})
        await asyncio.wait_for(reconnected.wait(), timeout=1)

        assert attempts == [(1, None)]
        assert ids == ["conn-2"]
        assert hub.is_connected
        assert first.closed
        assert await hub.invoke("Subscribe", ["WeatherData"]) == {}
    finally:
        await hub.stop()


@pytest.mark.asyncio
async def test_gives_up_when_reconnect_schedule_is_exhausted() -> None:
    first = FakeWebSocket()
    http = FakeHttpSession([_negotiation("conn-1"), (503, "unavailable")], [first])
    hub = _hub(http, reconnect_delays=(0.0,))
    closed = asyncio.Event()
    errors: list[BaseException | None] = []

    def on_close(error: BaseException | None) -> None:
        errors.append(error)
        closed.set()

    hub.on_close(on_close)
    await hub.start()

    await first.close()
    await asyncio.wait_for(closed.wait(), timeout=1)

    assert isinstance(errors[0], TransportError)
    assert errors[0].status_code == 503
    assert hub.state is HubConnectionState.DISCONNECTED
    await hub.stop()


@pytest.mark.asyncio
async def test_negotiate_unauthorized() -> None:
    hub = _hub(FakeHttpSession([(401, "Unauthorized")], []))

    with pytest.raises(TransportError) as exc_info:
        await hub.start()

    assert exc_info.value.is_unauthorized
    assert hub.state is HubConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_negotiate_redirect_is_rejected() -> None:
    hub = _hub(FakeHttpSession([(200, json.dumps({"url": "https://elsewhere", "accessToken": "secret"}))], []))

    with pytest.raises(TransportError, match="redirect"):
        await hub.start()


@pytest.mark.asyncio
async def test_negotiate_without_websockets_is_rejected() -> None:
    body = {"connectionId": "c", "availableTransports": [{"transport": "LongPolling"}]}
    hub = _hub(FakeHttpSession([(200, json.dumps(body))], []))

    with pytest.raises(TransportError, match="WebSockets"):
        await hub.start()


def test_from_config_uses_config_values() -> None:
    config = LiveTimingConfig(url=URL, reconnect_delays=(1.0, 5.0), invoke_timeout=3.0)

    hub = HubConnection.from_config(config, FakeHttpSession([], []))  # type: ignore[arg-type]

    assert hub.state is HubConnectionState.DISCONNECTED
    assert hub._reconnect_delays == (1.0, 5.0)
    assert hub._invoke_timeout == 3.0
