"""
Transport contract between the run loop and the hosting platform.

A transport delivers InvocationRequests as an async stream and accepts the
matching InvocationResponses. The stream ends when the platform disconnects;
it raises TransportError when the connection fails.

    await transport.open(session)
    async for request in transport.requests():
        ...
        await transport.send(response)
    await transport.close()

QueueTransport is the in-memory implementation, for embedding the runtime in
another asyncio program and for tests. See server.HttpTransport for the
network one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Protocol, runtime_checkable

from .config import AppEnv
from .dispatch import ErrorKind, InvocationRequest, InvocationResponse
from .errors import TransportError
from .tools import ToolDescriptor

logger = logging.getLogger("toolhost.transport")

SHUTDOWN_MESSAGE = "App is shutting down"
SHUTDOWN_REASON = "shutdown"

DEFAULT_HISTORY = 100  # responses QueueTransport keeps in `sent`


@dataclass(frozen=True)
class Session:
    """
    What a transport gets from the app when it opens.

    `catalog` is the frozen tool listing, `configure` forwards platform
    settings to the app, `health` reports app status.
    """

    env: AppEnv
    catalog: tuple[ToolDescriptor, ...]
    configure: Callable[[dict[str, str]], None]
    health: Callable[[], dict[str, Any]]

    def find(self, name: str) -> ToolDescriptor | None:
        """Get a catalog entry by tool name."""
        for descriptor in self.catalog:
            if descriptor.name == name:
                return descriptor
        return None


@runtime_checkable
class Transport(Protocol):
    """External collaborator feeding the run loop."""

    async def open(self, session: Session) -> None: ...

    def requests(self) -> AsyncIterator[InvocationRequest]: ...

    async def send(self, response: InvocationResponse) -> None: ...

    async def close(self) -> None: ...


class PendingReplies:
    """
    Futures for requests awaiting a response, keyed by request id.

    Shared by transports that pair each request with exactly one reply.
    """

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[InvocationResponse]] = {}

    def expect(self, request: InvocationRequest) -> asyncio.Future[InvocationResponse]:
        if request.request_id in self._futures:
            raise TransportError(f"Duplicate request id: {request.request_id}")
        future: asyncio.Future[InvocationResponse] = (
            asyncio.get_running_loop().create_future()
        )
        self._futures[request.request_id] = future
        return future

    def resolve(self, response: InvocationResponse) -> bool:
        """Deliver a response. Returns False if nobody is waiting for it."""
        future = self._futures.pop(response.request_id, None)
        if future is None or future.done():
            return False
        future.set_result(response)
        return True

    def discard(self, request_id: str) -> None:
        self._futures.pop(request_id, None)

    def shutdown(self, requests: dict[str, InvocationRequest]) -> int:
        """Answer every outstanding request with a shutdown error."""
        count = 0
        for request_id, future in list(self._futures.items()):
            if future.done():
                continue
            request = requests.get(request_id) or InvocationRequest(
                tool_name="", input=None, request_id=request_id
            )
            future.set_result(
                InvocationResponse.failure(
                    request,
                    ErrorKind.EXECUTION,
                    SHUTDOWN_MESSAGE,
                    details={"reason": SHUTDOWN_REASON},
                )
            )
            count += 1
        self._futures.clear()
        return count

    def __len__(self) -> int:
        return len(self._futures)


class QueueTransport:
    """
    In-memory transport backed by an asyncio.Queue.

    Callers submit work with `call()`, which resolves once the run loop
    answers. `disconnect()` ends the request stream cleanly; `fail()` ends it
    with a TransportError.

    Args:
        history: how many of the most recent responses `sent` keeps,
            0 = keep none
    """

    def __init__(self, *, history: int = DEFAULT_HISTORY) -> None:
        if history < 0:
            raise ValueError("history must be >= 0")
        self._queue: asyncio.Queue[InvocationRequest | None] = asyncio.Queue()
        self._pending = PendingReplies()
        self._inflight: dict[str, InvocationRequest] = {}
        self._session: Session | None = None
        self._failure: TransportError | None = None
        self._closed: bool = False
        self.sent: deque[InvocationResponse] = deque(maxlen=history)

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, session: Session) -> None:
        self._session = session
        logger.debug(f"Queue transport opened for {session.env.name}")

    def submit(self, request: InvocationRequest) -> asyncio.Future[InvocationResponse]:
        """Enqueue a request and return the future of its response."""
        if self._closed:
            raise TransportError("Transport is closed")
        future = self._pending.expect(request)
        self._inflight[request.request_id] = request
        self._queue.put_nowait(request)
        return future

    async def call(
        self, tool_name: str, arguments: Any, request_id: str | None = None
    ) -> InvocationResponse:
        """Submit an invocation and wait for its response."""
        if request_id is None:
            request = InvocationRequest(tool_name=tool_name, input=arguments)
        else:
            request = InvocationRequest(tool_name=tool_name, input=arguments, request_id=request_id)
        return await self.submit(request)

    def disconnect(self) -> None:
        """End the request stream."""
        self._queue.put_nowait(None)

    def fail(self, error: TransportError) -> None:
        """End the request stream with a transport failure."""
        self._failure = error
        self._queue.put_nowait(None)

    async def requests(self) -> AsyncIterator[InvocationRequest]:
        while True:
            request = await self._queue.get()
            if request is None:
                if self._failure is not None:
                    raise self._failure
                return
            yield request

    async def send(self, response: InvocationResponse) -> None:
        self.sent.append(response)
        self._inflight.pop(response.request_id, None)
        if not self._pending.resolve(response):
            logger.debug(f"No caller waiting for response {response.request_id[:8]}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        unanswered = self._pending.shutdown(self._inflight)
        self._inflight.clear()
        if unanswered:
            logger.info(f"Queue transport closed with {unanswered} unanswered request(s)")
