"""JSON Schema validation and argument coercion utilities."""

import json
from typing import Any, Mapping

from jsonschema import Draft7Validator

from shared.models import ParameterSchema

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages


def coerce_value(value: Any, schema: ParameterSchema) -> Any:
    """
    Convert a loosely typed argument to the type its schema declares.

    Values that cannot be converted are returned unchanged so that schema
    validation reports them.
    """
    if value is None:
        return None

    target = schema.type

    if target == "integer":
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                try:
                    number = float(value.strip())
                except ValueError:
                    return value
                return int(number) if number.is_integer() else value
        return value

    if target == "number":
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return value
        return value

    if target == "boolean":
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        elif isinstance(value, (int, float)) and not isinstance(value, bool) and value in (0, 1):
            return bool(value)
        return value

    if target == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value

    if target == "array":
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                try:
                    value = json.loads(stripped)
                except json.JSONDecodeError:
                    return value
            else:
                value = [part.strip() for part in stripped.split(",") if part.strip()]
        elif isinstance(value, (tuple, set)):
            value = list(value)
        elif not isinstance(value, list):
            value = [value]
        if schema.items is not None:
            value = [coerce_value(item, schema.items) for item in value]
        return value

    if target == "object":
        if isinstance(value, str) and value.strip().startswith("{"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value

    return value


def coerce_arguments(
    arguments: Mapping[str, Any],
    parameters: Mapping[str, ParameterSchema],
) -> dict[str, Any]:
    """Coerce every known argument to its parameter schema; unknown keys pass through."""
    coerced: dict[str, Any] = {}
    for name, value in arguments.items():
        schema = parameters.get(name)
        coerced[name] = coerce_value(value, schema) if schema is not None else value
    return coerced
