"""
Shared fixtures: an app environment, the arithmetic schema and a few tools.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from toolhost import AppEnv, ExecutionFailure, Schema, SchemaBuilder, Tool, tool


@pytest.fixture
def env() -> AppEnv:
    """Minimal environment with a short grace period."""
    return AppEnv(name="test-app", version="1.2.3", shutdown_grace=1.0)


@pytest.fixture
def arithmetic_schema() -> Schema:
    """Required numbers a and b, actions add/subtract."""
    return (
        SchemaBuilder(["add", "subtract"])
        .number("a", "First operand", required=True)
        .number("b", "Second operand", required=True)
        .build()
    )


def make_echo_tool(name: str, delay: float = 0.0) -> Tool:
    """Async tool echoing its `message` field, tagged with its own name."""

    @tool(
        name=name,
        description=f"Echo tool {name}",
        schema=SchemaBuilder(["echo"]).string("message", "Text to echo", required=True).build(),
    )
    async def echo(arguments: dict[str, Any]) -> str:
        if delay:
            await asyncio.sleep(delay)
        return f"{name}:{arguments['message']}"

    return echo


@pytest.fixture
def echo_tool() -> Tool:
    return make_echo_tool("echo")


@pytest.fixture
def failing_tool() -> Tool:
    """Tool that raises an unexpected exception."""

    @tool(
        name="broken",
        description="Always crashes",
        schema=SchemaBuilder(["run"]).build(),
    )
    def broken(arguments: dict[str, Any]) -> str:
        raise KeyError("boom")

    return broken


@pytest.fixture
def refusing_tool() -> Tool:
    """Tool that reports an execution failure."""

    @tool(
        name="refuser",
        description="Always refuses",
        schema=SchemaBuilder(["run"]).build(),
    )
    async def refuser(arguments: dict[str, Any]) -> str:
        raise ExecutionFailure("not today")

    return refuser


@pytest.fixture
def make_echo() -> Callable[..., Tool]:
    """Factory for named echo tools, optionally slow."""
    return make_echo_tool
