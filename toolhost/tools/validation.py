"""
Input validation: the bridge between untyped boundary data and a Schema.

Inputs arrive as decoded JSON documents (dict/list/str/int/float/bool/None).
`describe_kind` tags a value with its FieldKind; `validate` checks a whole
input against a schema and raises the first ValidationFailure it finds.

Policy: strict on declared fields, permissive on extras. Optional fields are
still type-checked when present. Pass `strict=True` to reject extras too.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..errors import (
    InvalidChoice,
    MalformedInput,
    MissingField,
    TypeMismatch,
    UnexpectedField,
    UnknownAction,
)
from .schema import ACTION_FIELD, FieldKind, FieldSpec, Schema


def describe_kind(value: Any) -> FieldKind | str:
    """
    Tag a boundary value with its JSON kind.

    Integers report INTEGER (they also satisfy NUMBER). Values outside the
    JSON data model report their Python type name.
    """
    # bool before int: bool is an int subclass
    if value is None:
        return FieldKind.NULL
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, int):
        return FieldKind.INTEGER
    if isinstance(value, float):
        return FieldKind.NUMBER
    if isinstance(value, str):
        return FieldKind.STRING
    if isinstance(value, Mapping):
        return FieldKind.OBJECT
    if isinstance(value, (list, tuple)):
        return FieldKind.ARRAY
    return type(value).__name__


def matches_kind(kind: FieldKind, value: Any) -> bool:
    """Check whether `value` is acceptable for a field declared as `kind`."""
    actual = describe_kind(value)
    if kind is FieldKind.NUMBER:
        return actual in (FieldKind.NUMBER, FieldKind.INTEGER)
    if kind is FieldKind.INTEGER:
        if actual is FieldKind.NUMBER:
            return float(value).is_integer()
        return actual is FieldKind.INTEGER
    return actual is kind


def _check_action(schema: Schema, arguments: Mapping[str, Any]) -> None:
    if ACTION_FIELD not in arguments:
        raise MissingField(ACTION_FIELD)
    action = arguments[ACTION_FIELD]
    if not isinstance(action, str):
        raise TypeMismatch(ACTION_FIELD, FieldKind.STRING, describe_kind(action))
    if action not in schema.actions:
        raise UnknownAction(action, schema.actions)


def _check_field(spec: FieldSpec, arguments: Mapping[str, Any]) -> None:
    if spec.name not in arguments:
        if spec.required:
            raise MissingField(spec.name)
        return

    value = arguments[spec.name]
    if not matches_kind(spec.kind, value):
        raise TypeMismatch(spec.name, spec.kind, describe_kind(value))
    if spec.choices and value not in spec.choices:
        raise InvalidChoice(spec.name, value, spec.choices)


def validate(schema: Schema, arguments: Any, *, strict: bool = False) -> None:
    """
    Validate `arguments` against `schema`.

    Checks run in a fixed order (shape, action, declared fields in
    declaration order, then extras in strict mode) so the same input always
    yields the same failure.

    Raises:
        ValidationFailure: the first mismatch found
    """
    if not isinstance(arguments, Mapping):
        raise MalformedInput(describe_kind(arguments))

    if schema.discriminated:
        _check_action(schema, arguments)

    for spec in schema.fields:
        _check_field(spec, arguments)

    if strict:
        declared = {spec.name for spec in schema.fields}
        if schema.discriminated:
            declared.add(ACTION_FIELD)
        for key in arguments:
            if key not in declared:
                raise UnexpectedField(str(key))
