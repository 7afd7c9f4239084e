"""
Tool input schemas.

A Schema is the declarative input contract of a tool. The same value is
rendered to JSON Schema for the platform (so it can prompt for, and pre-check,
correct input) and consumed by the validator before every execution.

Most tools are action-discriminated: the input carries an `action` key whose
value picks one of a fixed vocabulary, plus a set of typed fields.

    schema = (
        SchemaBuilder(["add", "subtract"])
        .number("a", "First operand", required=True)
        .number("b", "Second operand", required=True)
        .build()
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Iterable

from ..errors import ConfigurationError

ACTION_FIELD = "action"


class FieldKind(StrEnum):
    """JSON value kinds a field can declare."""

    NUMBER = "number"
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"  # only ever reported as an actual kind


@dataclass(frozen=True)
class FieldSpec:
    """One named, typed input field."""

    name: str
    description: str
    kind: FieldKind
    required: bool = False
    choices: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Field name must not be empty")
        if self.kind is FieldKind.NULL:
            raise ConfigurationError(f"Field '{self.name}' cannot declare kind null")
        if self.choices and self.kind is not FieldKind.STRING:
            raise ConfigurationError(f"Field '{self.name}': choices require kind string")

    def to_json_schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.kind.value}
        if self.choices:
            prop["enum"] = list(self.choices)
        prop["description"] = self.description
        return prop


@dataclass(frozen=True)
class Schema:
    """
    Immutable input contract.

    `actions` is the discriminator vocabulary; an empty tuple means the schema
    is not action-discriminated. `fields` keeps declaration order, which is
    also the order the validator checks them in.
    """

    actions: tuple[str, ...] = ()
    fields: tuple[FieldSpec, ...] = ()

    def __post_init__(self) -> None:
        for action in self.actions:
            if not isinstance(action, str) or not action:
                raise ConfigurationError(f"Invalid action name: {action!r}")
        if len(set(self.actions)) != len(self.actions):
            raise ConfigurationError(f"Duplicate actions in {list(self.actions)}")

        seen: set[str] = set()
        for spec in self.fields:
            if spec.name in seen:
                raise ConfigurationError(f"Duplicate field: {spec.name}")
            if self.actions and spec.name == ACTION_FIELD:
                raise ConfigurationError(
                    f"Field name '{ACTION_FIELD}' is reserved for the action discriminator"
                )
            seen.add(spec.name)

    @property
    def discriminated(self) -> bool:
        return bool(self.actions)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)

    def get_field(self, name: str) -> FieldSpec | None:
        """Get a field spec by name."""
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def to_json_schema(self) -> dict[str, Any]:
        """Render as a JSON Schema object for platform introspection."""
        properties: dict[str, Any] = {}
        required: list[str] = []

        if self.actions:
            properties[ACTION_FIELD] = {
                "type": "string",
                "enum": list(self.actions),
                "description": f"Action to perform: {', '.join(self.actions)}",
            }
            required.append(ACTION_FIELD)

        for spec in self.fields:
            properties[spec.name] = spec.to_json_schema()
        required.extend(self.required_fields)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }


class SchemaBuilder:
    """
    Fluent builder for action-discriminated schemas.

    Every field method returns the builder. `build()` validates the whole
    declaration at once and fails fast on an empty action vocabulary.
    """

    def __init__(self, actions: Iterable[str]) -> None:
        self._actions: list[str] = list(actions)
        self._fields: list[FieldSpec] = []

    def _add(
        self,
        name: str,
        description: str,
        kind: FieldKind,
        required: bool,
        choices: tuple[str, ...] = (),
    ) -> SchemaBuilder:
        self._fields.append(
            FieldSpec(
                name=name,
                description=description,
                kind=kind,
                required=required,
                choices=choices,
            )
        )
        return self

    def number(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.NUMBER, required)

    def integer(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.INTEGER, required)

    def string(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.STRING, required)

    def boolean(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.BOOLEAN, required)

    def array(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.ARRAY, required)

    def object(self, name: str, description: str, required: bool = False) -> SchemaBuilder:
        return self._add(name, description, FieldKind.OBJECT, required)

    def enum_field(
        self,
        name: str,
        description: str,
        required: bool = False,
        values: Iterable[str] = (),
    ) -> SchemaBuilder:
        """Add a string field restricted to `values`."""
        choices = tuple(values)
        if not choices:
            raise ConfigurationError(f"Enum field '{name}' needs at least one value")
        return self._add(name, description, FieldKind.STRING, required, choices)

    def build(self) -> Schema:
        if not self._actions:
            raise ConfigurationError("Schema needs at least one action")
        return Schema(actions=tuple(self._actions), fields=tuple(self._fields))
