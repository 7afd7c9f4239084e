"""
toolhost: expose schema-described tools to an orchestrating platform.

Public API:
- ToolApp: registration, run loop, shutdown
- SchemaBuilder, Schema, FieldKind: input contracts
- Tool, tool, ToolHandler: the tool abstraction
- Dispatcher, InvocationRequest, InvocationResponse, ErrorKind: dispatch
- Transport, QueueTransport, HttpTransport: transports
- AppEnv: configuration
- errors: exception hierarchy
"""

from .app import AppState, ToolApp
from .config import AppEnv
from .dispatch import Dispatcher, ErrorKind, InvocationRequest, InvocationResponse
from .errors import (
    ConfigurationError,
    DuplicateToolError,
    ExecutionFailure,
    InvalidChoice,
    LifecycleError,
    MalformedInput,
    MissingField,
    RegistryFrozenError,
    ToolHostError,
    TransportError,
    TypeMismatch,
    UnexpectedField,
    UnknownAction,
    ValidationFailure,
)
from .server import HttpTransport
from .tools import (
    FieldKind,
    FieldSpec,
    Schema,
    SchemaBuilder,
    Tool,
    ToolDescriptor,
    ToolHandler,
    ToolRegistry,
    tool,
    validate,
)
from .transport import QueueTransport, Session, Transport

__version__ = "0.1.0"

__all__ = [
    "AppEnv",
    "AppState",
    "ConfigurationError",
    "Dispatcher",
    "DuplicateToolError",
    "ErrorKind",
    "ExecutionFailure",
    "FieldKind",
    "FieldSpec",
    "HttpTransport",
    "InvalidChoice",
    "InvocationRequest",
    "InvocationResponse",
    "LifecycleError",
    "MalformedInput",
    "MissingField",
    "QueueTransport",
    "RegistryFrozenError",
    "Schema",
    "SchemaBuilder",
    "Session",
    "Tool",
    "ToolApp",
    "ToolDescriptor",
    "ToolHandler",
    "ToolHostError",
    "ToolRegistry",
    "Transport",
    "TransportError",
    "TypeMismatch",
    "UnexpectedField",
    "UnknownAction",
    "ValidationFailure",
    "tool",
    "validate",
]
