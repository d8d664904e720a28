"""Mapping of Python annotations to tool parameter schemas."""

import dataclasses
import datetime
import decimal
import enum
import inspect
import types
import typing
import uuid
from collections import abc
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from shared.models import ParameterSchema

DescribeProperty = Callable[[type, str], str]

_STRING_TYPES = (str, datetime.datetime, datetime.date, datetime.time, datetime.timedelta, uuid.UUID)
_ARRAY_ORIGINS = (list, tuple, set, frozenset, abc.Sequence, abc.Iterable, abc.Collection, abc.Set, abc.MutableSequence)
_OBJECT_ORIGINS = (dict, abc.Mapping, abc.MutableMapping)


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip ``Optional[...]`` / ``X | None``; return the inner type and whether it was optional."""
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
        return annotation, type(None) in typing.get_args(annotation)
    return annotation, False


def schema_type_of(annotation: Any) -> str:
    """Return the JSON schema type name for an annotation."""
    annotation, _ = unwrap_optional(annotation)
    origin = typing.get_origin(annotation)

    if origin is typing.Annotated:
        return schema_type_of(typing.get_args(annotation)[0])
    if origin is typing.Literal:
        values = typing.get_args(annotation)
        if values and all(isinstance(v, bool) for v in values):
            return "boolean"
        if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            return "integer"
        return "string"
    if origin in _ARRAY_ORIGINS:
        return "array"
    if origin in _OBJECT_ORIGINS:
        return "object"

    if not isinstance(annotation, type) or origin is not None:
        return "object"
    # bool is an int subclass, check it first
    if issubclass(annotation, bool):
        return "boolean"
    if issubclass(annotation, enum.Enum):
        return "string"
    if issubclass(annotation, int):
        return "integer"
    if issubclass(annotation, (float, decimal.Decimal)):
        return "number"
    if issubclass(annotation, _STRING_TYPES):
        return "string"
    if issubclass(annotation, (list, tuple, set, frozenset)):
        return "array"
    return "object"


def _enum_values(annotation: Any) -> Optional[list[Any]]:
    annotation, _ = unwrap_optional(annotation)
    if typing.get_origin(annotation) is typing.Literal:
        return [v for v in typing.get_args(annotation)]
    if isinstance(annotation, type) and typing.get_origin(annotation) is None and issubclass(annotation, enum.Enum):
        return [member.value if isinstance(member.value, str) else member.name for member in annotation]
    return None


def is_aggregate(annotation: Any) -> bool:
    """Plain data aggregates whose fields become nested ``properties``."""
    if not isinstance(annotation, type) or typing.get_origin(annotation) is not None:
        return False
    return (
        dataclasses.is_dataclass(annotation)
        or issubclass(annotation, BaseModel)
        or typing.is_typeddict(annotation)
    )


def aggregate_fields(annotation: type) -> dict[str, Any]:
    """Field name -> annotation for a dataclass, pydantic model or TypedDict."""
    if issubclass(annotation, BaseModel):
        return {name: info.annotation for name, info in annotation.model_fields.items()}
    try:
        hints = typing.get_type_hints(annotation)
    except (NameError, TypeError, AttributeError):
        hints = {}
    if dataclasses.is_dataclass(annotation):
        return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(annotation)}
    return dict(hints)


def build_parameter_schema(
    annotation: Any,
    *,
    description: str = "",
    required: bool = False,
    default: Any = inspect.Parameter.empty,
    describe_property: Optional[DescribeProperty] = None,
    depth: int = 0,
) -> ParameterSchema:
    """
    Build the schema for one parameter.

    Aggregates expand one level of nested ``properties``; deeper aggregates
    are plain objects.
    """
    if annotation is inspect.Parameter.empty:
        annotation = str if default is inspect.Parameter.empty or default is None else type(default)

    inner, _ = unwrap_optional(annotation)
    schema_type = schema_type_of(inner)
    schema = ParameterSchema(type=schema_type, description=description, required=required)

    enum_values = _enum_values(inner)
    if enum_values:
        schema.enum = enum_values

    if default is not inspect.Parameter.empty and default is not None:
        if isinstance(default, enum.Enum):
            schema.default = default.value if isinstance(default.value, str) else default.name
        elif isinstance(default, (str, int, float, bool)):
            schema.default = default

    if schema_type == "array":
        args = typing.get_args(inner)
        item_annotation = args[0] if args and args[0] is not Ellipsis else str
        schema.items = build_parameter_schema(item_annotation, depth=depth + 1)
    elif schema_type == "object" and depth == 0 and is_aggregate(inner):
        properties: dict[str, ParameterSchema] = {}
        for name, field_annotation in aggregate_fields(inner).items():
            prop_description = describe_property(inner, name) if describe_property else ""
            properties[name] = build_parameter_schema(
                field_annotation,
                description=prop_description,
                depth=depth + 1,
            )
        schema.properties = properties

    return schema
