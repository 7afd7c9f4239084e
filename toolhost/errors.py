"""
Error taxonomy for the tool host.

Startup errors (ConfigurationError, DuplicateToolError, LifecycleError) are
raised to the developer and stop the app from running. Invocation errors
(ValidationFailure, ExecutionFailure) never escape a dispatch: the dispatcher
turns them into error responses. TransportError belongs to the run loop.
"""

from __future__ import annotations

from typing import Any


class ToolHostError(Exception):
    """Base class for all tool host errors."""


class ConfigurationError(ToolHostError):
    """Invalid setup detected at construction or build time."""


class DuplicateToolError(ToolHostError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool already registered: {name}")
        self.name = name


class LifecycleError(ToolHostError):
    """Operation not allowed in the app's current state."""


class RegistryFrozenError(LifecycleError):
    """Registration attempted after the registry was frozen."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Registry is frozen, cannot register tool: {name}")
        self.name = name


class TransportError(ToolHostError):
    """Failure at the transport boundary (disconnect, bind failure, bad envelope)."""


class ExecutionFailure(ToolHostError):
    """
    Raised by tool handlers to report a failed execution.

    The message is sent back to the caller as-is, so it must not contain
    secrets.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# --- Validation failures ---


class ValidationFailure(ToolHostError):
    """Input did not match the tool's schema."""

    reason: str = "invalid_input"

    def to_dict(self) -> dict[str, Any]:
        """Structured detail attached to the error response."""
        return {"reason": self.reason, "message": str(self)}


class MalformedInput(ValidationFailure):
    """The input is not an object."""

    reason = "malformed_input"

    def __init__(self, actual: str) -> None:
        super().__init__(f"Input must be an object, got {actual}")
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "actual": str(self.actual)}


class UnknownAction(ValidationFailure):
    """The action discriminator is not in the schema's vocabulary."""

    reason = "unknown_action"

    def __init__(self, value: str, allowed: tuple[str, ...] = ()) -> None:
        message = f"Unknown action: {value}"
        if allowed:
            message += f" (expected one of: {', '.join(allowed)})"
        super().__init__(message)
        self.value = value
        self.allowed = allowed

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "value": self.value, "allowed": list(self.allowed)}


class MissingField(ValidationFailure):
    """A required field is absent."""

    reason = "missing_field"

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing required field: {name}")
        self.name = name

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.name}


class TypeMismatch(ValidationFailure):
    """A declared field holds a value of the wrong kind."""

    reason = "type_mismatch"

    def __init__(self, name: str, expected: str, actual: str) -> None:
        super().__init__(f"Field '{name}' expected {expected}, got {actual}")
        self.name = name
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "field": self.name,
            "expected": str(self.expected),
            "actual": str(self.actual),
        }


class InvalidChoice(ValidationFailure):
    """A choice field holds a value outside its declared choices."""

    reason = "invalid_choice"

    def __init__(self, name: str, value: str, choices: tuple[str, ...]) -> None:
        super().__init__(
            f"Field '{name}' must be one of: {', '.join(choices)} (got {value})"
        )
        self.name = name
        self.value = value
        self.choices = choices

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "field": self.name,
            "value": self.value,
            "choices": list(self.choices),
        }


class UnexpectedField(ValidationFailure):
    """An undeclared field was sent while strict validation is on."""

    reason = "unexpected_field"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unexpected field: {name}")
        self.name = name

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.name}
