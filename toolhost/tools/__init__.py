"""
Tools package: tool contracts, schemas, validation and the registry.

Public API:
- Schema, SchemaBuilder, FieldSpec, FieldKind: input contracts
- ToolHandler, Tool, ToolDescriptor, tool: the tool abstraction
- validate, describe_kind: input validation
- ToolRegistry: name -> tool mapping
"""

from .base import Tool, ToolDescriptor, ToolFunction, ToolHandler, describe, tool
from .registry import ToolRegistry
from .schema import ACTION_FIELD, FieldKind, FieldSpec, Schema, SchemaBuilder
from .validation import describe_kind, matches_kind, validate

__all__ = [
    "ACTION_FIELD",
    "FieldKind",
    "FieldSpec",
    "Schema",
    "SchemaBuilder",
    "Tool",
    "ToolDescriptor",
    "ToolFunction",
    "ToolHandler",
    "describe",
    "tool",
    "ToolRegistry",
    "describe_kind",
    "matches_kind",
    "validate",
]
