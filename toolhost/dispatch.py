"""
Invocation dispatch.

One dispatch cycle: resolve the tool, validate the input against its schema,
execute it, and normalize the outcome into an InvocationResponse. Every
tool-level failure (unknown tool, bad input, handler error, handler crash,
timeout, sys.exit()) comes back as an error response; nothing a handler does
can escape as an exception, except cancellation during shutdown and
KeyboardInterrupt.

Sync handlers run in a worker thread so they never block the event loop.
No retries: the dispatcher cannot know whether a handler's side effects are
safe to repeat.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import ExecutionFailure, ValidationFailure
from .tools import ToolHandler, ToolRegistry, validate

logger = logging.getLogger("toolhost.dispatch")


class ErrorKind(StrEnum):
    """Why an invocation failed."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_INPUT = "invalid_input"
    EXECUTION = "execution"


def _new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class InvocationRequest:
    """One call against a named tool. `input` is untyped until validated."""

    tool_name: str
    input: Any
    request_id: str = field(default_factory=_new_request_id)


@dataclass(frozen=True)
class InvocationResponse:
    """
    Outcome of one invocation.

    On success `content` is the handler's result. On failure `content` is the
    error message, `error_kind` says which stage failed and `details` may hold
    structured context (validation failures).
    """

    request_id: str
    tool_name: str
    ok: bool
    content: str
    error_kind: ErrorKind | None = None
    details: dict[str, Any] | None = None
    latency_ms: float = 0.0

    @property
    def is_error(self) -> bool:
        return not self.ok

    @classmethod
    def success(
        cls, request: InvocationRequest, content: str, latency_ms: float = 0.0
    ) -> InvocationResponse:
        return cls(
            request_id=request.request_id,
            tool_name=request.tool_name,
            ok=True,
            content=content,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(
        cls,
        request: InvocationRequest,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
        latency_ms: float = 0.0,
    ) -> InvocationResponse:
        return cls(
            request_id=request.request_id,
            tool_name=request.tool_name,
            ok=False,
            content=message,
            error_kind=kind,
            details=details,
            latency_ms=latency_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "request_id": self.request_id,
            "tool_name": self.tool_name,
            "ok": self.ok,
            "content": self.content,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "details": self.details,
            "latency_ms": self.latency_ms,
        }


class Dispatcher:
    """
    Routes invocations to tools in a (frozen) registry.

    Args:
        registry: where tools are looked up
        max_concurrency: cap on simultaneously executing handlers, 0 = no cap
        execution_timeout: per-execution limit in seconds, None = no limit
        strict_inputs: reject undeclared input fields
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        max_concurrency: int = 0,
        execution_timeout: float | None = None,
        strict_inputs: bool = False,
    ) -> None:
        self._registry = registry
        self._execution_timeout = execution_timeout
        self._strict_inputs = strict_inputs
        self._semaphore: asyncio.Semaphore | None = (
            asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None
        )

    async def dispatch(self, request: InvocationRequest) -> InvocationResponse:
        """Run one invocation and return its response."""
        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        handler = self._registry.lookup(request.tool_name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {request.tool_name}")
            return InvocationResponse.failure(
                request,
                ErrorKind.UNKNOWN_TOOL,
                f"Unknown tool: {request.tool_name}",
                details={"tool": request.tool_name},
                latency_ms=elapsed_ms(),
            )

        try:
            validate(handler.schema, request.input, strict=self._strict_inputs)
        except ValidationFailure as e:
            logger.info(f"Invalid input for {request.tool_name}: {e}")
            return InvocationResponse.failure(
                request,
                ErrorKind.INVALID_INPUT,
                str(e),
                details=e.to_dict(),
                latency_ms=elapsed_ms(),
            )

        logger.debug(f"Executing {request.tool_name} (request {request.request_id[:8]})")
        try:
            content = await self._execute(handler, request.input)
        except ExecutionFailure as e:
            logger.info(f"Tool {request.tool_name} reported failure: {e.message}")
            return InvocationResponse.failure(
                request, ErrorKind.EXECUTION, e.message, latency_ms=elapsed_ms()
            )
        except Exception as e:
            logger.exception(f"Tool {request.tool_name} execution failed")
            return InvocationResponse.failure(
                request,
                ErrorKind.EXECUTION,
                f"Tool execution failed: {e}",
                latency_ms=elapsed_ms(),
            )
        except SystemExit as e:
            # a tool must not take the host process down with it
            logger.error(f"Tool {request.tool_name} tried to exit (code {e.code})")
            return InvocationResponse.failure(
                request,
                ErrorKind.EXECUTION,
                f"Tool execution failed: tool tried to exit (code {e.code})",
                latency_ms=elapsed_ms(),
            )

        if not isinstance(content, str):
            logger.error(
                f"Tool {request.tool_name} returned {type(content).__name__}, expected str"
            )
            return InvocationResponse.failure(
                request,
                ErrorKind.EXECUTION,
                f"Tool returned {type(content).__name__}, expected str",
                latency_ms=elapsed_ms(),
            )

        latency_ms = elapsed_ms()
        logger.info(f"Tool {request.tool_name} finished in {latency_ms:.0f}ms")
        return InvocationResponse.success(request, content, latency_ms=latency_ms)

    async def _execute(self, handler: ToolHandler, arguments: dict[str, Any]) -> Any:
        limit = self._semaphore if self._semaphore is not None else contextlib.nullcontext()
        async with limit:
            deadline = asyncio.timeout(self._execution_timeout)
            try:
                async with deadline:
                    return await _call(handler, arguments)
            except TimeoutError:
                if not deadline.expired():
                    raise  # raised by the handler itself
                logger.warning(f"Tool {handler.name} timed out after {self._execution_timeout}s")
                raise ExecutionFailure(
                    f"Tool execution timed out after {self._execution_timeout}s"
                ) from None


async def _call(handler: ToolHandler, arguments: dict[str, Any]) -> Any:
    """
    Invoke a handler's execute entry point.

    Handles both sync and async tools:
    - Async tools are awaited directly
    - Sync tools are run in a thread pool to avoid blocking
    """
    execute = handler.execute
    if inspect.iscoroutinefunction(execute):
        return await execute(arguments)

    result = await asyncio.to_thread(execute, arguments)
    # sync wrappers may hand back an awaitable
    if inspect.isawaitable(result):
        result = await result
    return result
