"""
Calculator tool.

Reference tool: four arithmetic actions over two numeric operands.
"""

from __future__ import annotations

from typing import Any

from ..errors import ExecutionFailure
from .base import tool
from .schema import SchemaBuilder


SCHEMA = (
    SchemaBuilder(["add", "subtract", "multiply", "divide"])
    .number("a", "First operand", required=True)
    .number("b", "Second operand", required=True)
    .build()
)


def _format(value: float) -> str:
    """Render integral floats without a trailing .0."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@tool(
    name="calculator",
    description="Performs arithmetic calculations.",
    schema=SCHEMA,
)
def calculator(arguments: dict[str, Any]) -> str:
    """Apply the requested action to a and b."""
    action = arguments["action"]
    a = float(arguments["a"])
    b = float(arguments["b"])

    if action == "add":
        result = a + b
    elif action == "subtract":
        result = a - b
    elif action == "multiply":
        result = a * b
    elif action == "divide":
        if b == 0:
            raise ExecutionFailure("divide by zero")
        result = a / b
    else:
        raise ExecutionFailure(f"unknown action: {action}")

    return f"{_format(a)} {action} {_format(b)} = {_format(result)}"


TOOL = calculator
