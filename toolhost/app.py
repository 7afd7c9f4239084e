"""
ToolApp: the runtime a developer builds, registers tools on, and runs.

Lifecycle:
- BUILDING: register_tool() and on_configure() are allowed
- RUNNING: entered by run(); the registry is frozen, requests stream in from
  the transport and each one is dispatched as its own task
- STOPPED: terminal; reached when the transport disconnects, stop() is
  called, or the transport fails

On the way to STOPPED, in-flight invocations get `env.shutdown_grace` seconds
to finish and reply. Whatever is still running after that is cancelled and its
response discarded.

    app = ToolApp().register_tool(calculator)
    app.serve()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from enum import Enum
from typing import Any, AsyncIterator, Callable

from .config import AppEnv, configure_logging
from .dispatch import Dispatcher, InvocationRequest
from .errors import ConfigurationError, LifecycleError, TransportError
from .tools import ToolDescriptor, ToolHandler, ToolRegistry
from .transport import Session, Transport

logger = logging.getLogger("toolhost.app")

ConfigureCallback = Callable[[dict[str, str]], None]


class AppState(Enum):
    BUILDING = "building"
    RUNNING = "running"
    STOPPED = "stopped"


class ToolApp:
    """
    Owns the registry and drives the dispatch loop.

    Args:
        env: app environment; read from TOOLHOST_APP_* when omitted

    Raises:
        ConfigurationError: the environment lacks an app identity
    """

    def __init__(self, env: AppEnv | None = None) -> None:
        self._env = env if env is not None else AppEnv.load()
        self._registry = ToolRegistry()
        self._state = AppState.BUILDING
        self._on_configure: ConfigureCallback | None = None
        self._stop_event: asyncio.Event | None = None
        self._stop_requested = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def env(self) -> AppEnv:
        return self._env

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # --- Building ---

    def register_tool(self, handler: ToolHandler) -> ToolApp:
        """
        Register a tool. Returns the app for chaining.

        Raises:
            DuplicateToolError: name already registered
            RegistryFrozenError: the app has already started running
        """
        self._registry.register(handler)
        logger.info(f"Registered tool: {handler.name}")
        return self

    def on_configure(self, callback: ConfigureCallback) -> ConfigureCallback:
        """Set the callback receiving settings pushed by the platform."""
        if self._state is not AppState.BUILDING:
            raise LifecycleError("on_configure() is only allowed before run()")
        self._on_configure = callback
        return callback

    # --- Introspection ---

    def list_tools(self) -> list[ToolDescriptor]:
        return self._registry.list()

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self._state is not AppState.STOPPED,
            "name": self._env.name,
            "version": self._env.version,
            "state": self._state.value,
            "tools": self._registry.names,
        }

    def configure(self, settings: dict[str, str]) -> None:
        """Deliver platform settings to the on_configure callback, if any."""
        logger.info(f"Settings update with {len(settings)} key(s)")
        if self._on_configure is not None:
            self._on_configure(settings)

    # --- Running ---

    def stop(self) -> None:
        """Ask the run loop to shut down. Safe to call more than once."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self, transport: Transport) -> None:
        """
        Serve invocations from `transport` until it disconnects or stop().

        Raises:
            LifecycleError: run() was already called
            ConfigurationError: no tools registered
            TransportError: the transport failed (after in-flight work drained)
        """
        if self._state is not AppState.BUILDING:
            raise LifecycleError(f"run() called in state {self._state.value}")
        if not len(self._registry):
            raise ConfigurationError("No tools registered")

        self._registry.freeze()
        self._state = AppState.RUNNING
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()

        dispatcher = Dispatcher(
            self._registry,
            max_concurrency=self._env.max_concurrency,
            execution_timeout=self._env.execution_timeout,
            strict_inputs=self._env.strict_inputs,
        )
        session = Session(
            env=self._env,
            catalog=tuple(self._registry.list()),
            configure=self.configure,
            health=self.health,
        )

        failure: TransportError | None = None
        try:
            await transport.open(session)
            logger.info(
                f"[{self._env.name}] running with {len(self._registry)} tool(s): "
                f"{', '.join(self._registry.names)}"
            )
            await self._receive(transport, dispatcher)
        except TransportError as e:
            logger.error(f"Transport failed: {e}")
            failure = e
        finally:
            await self._drain()
            try:
                await transport.close()
            finally:
                self._state = AppState.STOPPED
                logger.info(f"[{self._env.name}] stopped")

        if failure is not None:
            raise failure

    async def _receive(self, transport: Transport, dispatcher: Dispatcher) -> None:
        """Pull requests until the stream ends or a stop is requested."""
        assert self._stop_event is not None
        stream = transport.requests().__aiter__()
        stop_wait = asyncio.ensure_future(self._stop_event.wait())
        next_request: asyncio.Task[InvocationRequest | None] | None = None
        try:
            while True:
                next_request = asyncio.create_task(_next_or_none(stream))
                done, _ = await asyncio.wait(
                    {next_request, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_request not in done:
                    logger.info("Stop requested, no longer accepting requests")
                    return
                request = next_request.result()
                if request is None:
                    logger.info("Transport disconnected")
                    return
                self._spawn(transport, dispatcher, request)
        finally:
            stop_wait.cancel()
            if next_request is not None and not next_request.done():
                next_request.cancel()
                await asyncio.gather(next_request, return_exceptions=True)
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _spawn(
        self, transport: Transport, dispatcher: Dispatcher, request: InvocationRequest
    ) -> None:
        task = asyncio.create_task(
            self._handle(transport, dispatcher, request),
            name=f"invoke-{request.tool_name}-{request.request_id[:8]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(
        self, transport: Transport, dispatcher: Dispatcher, request: InvocationRequest
    ) -> None:
        response = await dispatcher.dispatch(request)
        try:
            await transport.send(response)
        except TransportError as e:
            logger.warning(f"Could not deliver response {request.request_id[:8]}: {e}")

    async def _drain(self) -> None:
        """Give in-flight invocations the grace period, then cancel the rest."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        grace = self._env.shutdown_grace
        logger.info(f"Waiting up to {grace:.1f}s for {len(pending)} in-flight invocation(s)")
        _, still_running = await asyncio.wait(pending, timeout=grace)
        if still_running:
            logger.warning(f"Cancelling {len(still_running)} invocation(s) after grace period")
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)

    # --- Entry point ---

    def serve(self) -> None:
        """
        Run over HTTP until SIGINT/SIGTERM.

        Blocks the calling thread. Listens on the unix socket or port from
        the environment.
        """
        from .server import HttpTransport

        configure_logging(self._env.log_level)
        transport = HttpTransport(self._env)

        async def main() -> None:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.stop)
            await self.run(transport)

        asyncio.run(main())


async def _next_or_none(stream: AsyncIterator[InvocationRequest]) -> InvocationRequest | None:
    """Next request from the stream, or None once it is exhausted."""
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None
