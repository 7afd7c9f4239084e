"""
FastAPI transport for the tool host.

Endpoints:
- GET  /health            - Health check and app identity
- GET  /v1/tools          - List registered tools with their schemas
- GET  /v1/tools/{name}   - Describe one tool
- POST /v1/invoke-tool    - Invoke a tool
- POST /v1/configure      - Push settings to the app

Requests to /v1/invoke-tool are handed to the app's run loop through a queue
and the HTTP handler waits for the matching response. Tool failures are not
HTTP failures: execution errors come back as 200 with `ok: false`. Unknown
tools map to 404, invalid input to 422, shutdown to 503.

Served by uvicorn on a unix socket (env.sock_path) or a TCP port. Signals are
left to the app so in-flight invocations can drain before the server stops.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Any, AsyncIterator, Iterator

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import AppEnv
from .dispatch import ErrorKind, InvocationRequest, InvocationResponse
from .errors import ConfigurationError, TransportError
from .transport import SHUTDOWN_MESSAGE, SHUTDOWN_REASON, PendingReplies, Session

logger = logging.getLogger("toolhost.server")


# --- Request/Response Models ---


def _empty_arguments() -> dict[str, Any]:
    return {}


def _empty_settings() -> dict[str, str]:
    return {}


class ToolInvokeRequest(BaseModel):
    """Request body for /v1/invoke-tool endpoint."""

    tool_name: str = Field(..., description="Name of tool to invoke")
    arguments: Any = Field(
        default_factory=_empty_arguments, description="Tool input document"
    )
    request_id: str | None = Field(
        default=None, description="Caller-chosen id echoed in the response"
    )


class ToolInvokeResponse(BaseModel):
    """Response body for /v1/invoke-tool endpoint."""

    request_id: str
    tool_name: str
    ok: bool
    content: str
    error_kind: str | None = None
    details: dict[str, Any] | None = None
    latency_ms: float


class ToolInfo(BaseModel):
    """Info about a tool."""

    name: str
    description: str
    parameters: dict[str, Any]
    requires_approval: bool


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    healthy: bool
    name: str
    version: str
    state: str
    tools: list[str]


class ConfigureRequest(BaseModel):
    """Request body for /v1/configure endpoint."""

    settings: dict[str, str] = Field(
        default_factory=_empty_settings, description="Settings pushed by the platform"
    )


class ConfigureResponse(BaseModel):
    configured: bool


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNKNOWN_TOOL: 404,
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.EXECUTION: 200,
}


def _status_for(response: InvocationResponse) -> int:
    if response.ok or response.error_kind is None:
        return 200
    if response.details and response.details.get("reason") == SHUTDOWN_REASON:
        return 503
    return _STATUS_BY_KIND[response.error_kind]


# --- uvicorn ---


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the owning app."""

    def install_signal_handlers(self) -> None:  # uvicorn < 0.29
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:  # uvicorn >= 0.29
        yield


# --- Transport ---


class HttpTransport:
    """
    HTTP transport: a FastAPI app feeding the run loop.

    Args:
        env: listen address comes from env.sock_path or env.host/env.port
        listen: start uvicorn on open(); False serves only `self.api`
            (tests drive it in-process through httpx.ASGITransport)
    """

    def __init__(self, env: AppEnv, *, listen: bool = True) -> None:
        if listen and not env.sock_path and not env.port:
            raise ConfigurationError(
                "HTTP transport needs a unix socket path or a port to listen on"
            )
        self._env = env
        self._listen = listen
        self._queue: asyncio.Queue[InvocationRequest | None] = asyncio.Queue()
        self._pending = PendingReplies()
        self._inflight: dict[str, InvocationRequest] = {}
        self._session: Session | None = None
        self._server: _EmbeddedServer | None = None
        self._server_task: asyncio.Task[None] | None = None
        self._failure: TransportError | None = None
        self._closing: bool = False
        self.api: FastAPI = self._build_api()

    # --- Transport contract ---

    async def open(self, session: Session) -> None:
        self._session = session
        if not self._listen:
            return

        config = self._uvicorn_config()
        self._server = _EmbeddedServer(config)
        self._server_task = asyncio.create_task(self._serve(), name="toolhost-http")
        logger.info(f"[{session.env.name}] listening on {self._env.listen_address}")

    async def requests(self) -> AsyncIterator[InvocationRequest]:
        while True:
            request = await self._queue.get()
            if request is None:
                if self._failure is not None:
                    raise self._failure
                return
            yield request

    async def send(self, response: InvocationResponse) -> None:
        self._inflight.pop(response.request_id, None)
        if not self._pending.resolve(response):
            logger.debug(f"Client gone before response {response.request_id[:8]}")

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        unanswered = self._pending.shutdown(self._inflight)
        self._inflight.clear()
        if unanswered:
            logger.info(f"Answered {unanswered} pending request(s) with shutdown error")

        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            with contextlib.suppress(asyncio.CancelledError):
                await self._server_task
        self._remove_socket()
        logger.info("HTTP transport closed")

    # --- Server lifecycle ---

    def _uvicorn_config(self) -> uvicorn.Config:
        if self._env.sock_path:
            self._remove_socket()  # stale socket from a previous run
            return uvicorn.Config(
                self.api, uds=self._env.sock_path, log_level=self._log_level()
            )
        return uvicorn.Config(
            self.api,
            host=self._env.host or "127.0.0.1",
            port=self._env.port,
            log_level=self._log_level(),
        )

    def _log_level(self) -> int:
        return logging.getLevelName(self._env.log_level.upper())

    async def _serve(self) -> None:
        assert self._server is not None
        try:
            await self._server.serve()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind
            self._failure = TransportError(
                f"HTTP server failed to start on {self._env.listen_address} (exit code {e.code})"
            )
        except OSError as e:
            self._failure = TransportError(f"HTTP server error: {e}")
        finally:
            if not self._closing:
                if self._failure is None:
                    logger.info("HTTP server stopped, ending request stream")
                self._queue.put_nowait(None)

    def _remove_socket(self) -> None:
        if self._env.sock_path:
            with contextlib.suppress(FileNotFoundError):
                os.remove(self._env.sock_path)

    # --- Endpoints ---

    def _require_session(self) -> Session:
        if self._session is None:
            raise HTTPException(status_code=503, detail="App is not running")
        return self._session

    def _build_api(self) -> FastAPI:
        api = FastAPI(
            title=self._env.name,
            description="Tool host",
            version=self._env.version or "0.0.0",
        )

        @api.get("/health", response_model=HealthResponse)
        async def health_check() -> HealthResponse:
            """Health check endpoint."""
            session = self._require_session()
            return HealthResponse(**session.health())

        @api.get("/v1/tools", response_model=list[ToolInfo])
        async def list_tools() -> list[ToolInfo]:
            """List available tools."""
            session = self._require_session()
            return [ToolInfo(**d.to_dict()) for d in session.catalog]

        @api.get("/v1/tools/{name}", response_model=ToolInfo)
        async def get_tool(name: str) -> ToolInfo:
            """Describe one tool."""
            session = self._require_session()
            descriptor = session.find(name)
            if descriptor is None:
                raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
            return ToolInfo(**descriptor.to_dict())

        @api.post("/v1/invoke-tool", response_model=ToolInvokeResponse)
        async def invoke_tool(request: ToolInvokeRequest) -> JSONResponse:
            """
            Tool invocation endpoint.

            Queues the invocation for the run loop and waits for its response.
            """
            self._require_session()
            if self._closing:
                raise HTTPException(status_code=503, detail=SHUTDOWN_MESSAGE)

            if request.request_id:
                invocation = InvocationRequest(
                    tool_name=request.tool_name,
                    input=request.arguments,
                    request_id=request.request_id,
                )
            else:
                invocation = InvocationRequest(
                    tool_name=request.tool_name, input=request.arguments
                )

            try:
                future = self._pending.expect(invocation)
            except TransportError as e:
                raise HTTPException(status_code=409, detail=str(e)) from e
            self._inflight[invocation.request_id] = invocation
            self._queue.put_nowait(invocation)

            try:
                response = await future
            except asyncio.CancelledError:
                # client disconnected; drop our interest in the reply
                self._pending.discard(invocation.request_id)
                raise

            return JSONResponse(
                status_code=_status_for(response),
                content=ToolInvokeResponse(**response.to_dict()).model_dump(),
            )

        @api.post("/v1/configure", response_model=ConfigureResponse)
        async def configure(request: ConfigureRequest) -> ConfigureResponse:
            """Forward platform settings to the app."""
            session = self._require_session()
            session.configure(dict(request.settings))
            return ConfigureResponse(configured=True)

        return api
