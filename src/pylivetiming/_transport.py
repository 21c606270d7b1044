"""Hub transport interface consumed by the subscription session."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

#: Handlers may be plain callables or return an awaitable; awaitables are
#: scheduled as tasks by the transport.
HandlerResult = Awaitable[None] | None
InvocationHandler = Callable[..., HandlerResult]
ReconnectingHandler = Callable[[int, BaseException | None], HandlerResult]
ReconnectedHandler = Callable[[str | None], HandlerResult]
CloseHandler = Callable[[BaseException | None], HandlerResult]


class HubTransport(Protocol):
    """Structural hub interface used by :class:`SubscriptionSession`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`HubConnection`) concrete.
    Connection life cycle, keepalive and automatic retry belong to the
    transport.
    """

    @property
    def is_connected(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def invoke(self, method: str, *args: Any) -> Any: ...

    def on(self, target: str, handler: InvocationHandler) -> None: ...

    def on_reconnecting(self, handler: ReconnectingHandler) -> None: ...

    def on_reconnected(self, handler: ReconnectedHandler) -> None: ...

    def on_close(self, handler: CloseHandler) -> None: ...
