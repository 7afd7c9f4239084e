"""
Base types and protocols for the tool system.

A tool bundles a name, a description and an input schema (what the platform
sees) with an execute entry point (what the dispatcher calls). Any object
exposing those four members is a ToolHandler; the `Tool` dataclass and the
`tool` decorator cover the common function-backed case.

    @tool(
        name="echo",
        description="Echo a message back",
        schema=SchemaBuilder(["say"]).string("message", "Text", required=True).build(),
    )
    async def echo(arguments: dict[str, Any]) -> str:
        return arguments["message"]

Handlers return a string on success and raise ExecutionFailure on failure.
They may be sync (run in a worker thread) or async (awaited on the loop).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from ..errors import ConfigurationError
from .schema import Schema


# Type alias for tool functions (sync or async)
ToolFunction = Callable[[dict[str, Any]], str | Awaitable[str]]


@runtime_checkable
class ToolHandler(Protocol):
    """
    Capability contract every registered tool satisfies.

    `requires_approval` is optional; handlers without it are treated as not
    requiring approval.
    """

    name: str
    description: str
    schema: Schema

    def execute(self, arguments: dict[str, Any]) -> str | Awaitable[str]: ...


@dataclass(frozen=True)
class ToolDescriptor:
    """
    What the platform sees of a tool: everything except the implementation.
    """

    name: str
    description: str
    schema: Schema
    requires_approval: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the introspection format sent to the platform."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.schema.to_json_schema(),
            "requires_approval": self.requires_approval,
        }


@dataclass(frozen=True)
class Tool:
    """
    Complete tool definition: contract + implementation.

    Tool modules export a single `TOOL` instance of this type.
    """

    name: str
    description: str
    schema: Schema
    execute: ToolFunction
    requires_approval: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Tool name must not be empty")


def describe(handler: ToolHandler) -> ToolDescriptor:
    """Build the platform-facing descriptor of any handler."""
    return ToolDescriptor(
        name=handler.name,
        description=handler.description or "",
        schema=handler.schema,
        requires_approval=bool(getattr(handler, "requires_approval", False)),
    )


def tool(
    name: str,
    description: str,
    schema: Schema,
    requires_approval: bool = False,
) -> Callable[[ToolFunction], Tool]:
    """
    Decorator to create a Tool from a function.

    Usage:
        @tool(name="calculator", description="...", schema=CALC_SCHEMA)
        def calculator(arguments: dict[str, Any]) -> str:
            ...

        # calculator is now a Tool instance
        TOOL = calculator
    """
    def decorator(fn: ToolFunction) -> Tool:
        return Tool(
            name=name,
            description=description,
            schema=schema,
            execute=fn,
            requires_approval=requires_approval,
        )
    return decorator
