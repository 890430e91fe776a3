"""Product type schema validation and attribute validation.

Two entry points:

- ``validate_schema`` checks a raw field schema (as submitted by an admin)
  and returns the parsed ``ProductTypeSchema``.
- ``validate_attributes`` checks a product's attribute payload against a
  schema and returns the typed ``AttributeValue`` map.

Both fail fast: the first violation raises and nothing is aggregated.
"""

import math
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from commerce_common.errors import AttributeValidationFailed, SchemaInvalid
from pydantic import TypeAdapter, ValidationError

from .schemas import (
    FIELD_TYPES,
    AttributeValue,
    BooleanValue,
    DateValue,
    EnumValue,
    FieldDefinition,
    FieldType,
    FileValue,
    MeasurementValue,
    NumberValue,
    ProductTypeSchema,
    StringValue,
)

_STORED_ATTRIBUTES = TypeAdapter(dict[str, AttributeValue])


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def validate_schema(schema: Any) -> ProductTypeSchema:
    """Validate a raw product type schema.

    Args:
        schema: Candidate schema, a mapping with a ``fields`` list.

    Returns:
        ProductTypeSchema: The parsed schema.

    Raises:
        SchemaInvalid: On the first malformed field.
    """
    if isinstance(schema, ProductTypeSchema):
        return schema
    if not isinstance(schema, Mapping):
        raise SchemaInvalid("Schema must be a valid object")

    fields = schema.get("fields")
    if not isinstance(fields, (list, tuple)):
        raise SchemaInvalid("Schema must contain a fields array")

    seen: set[str] = set()
    for index, field in enumerate(fields):
        if not isinstance(field, Mapping):
            raise SchemaInvalid(f"Field #{index} must be an object", index=index)

        key = field.get("key")
        if not _is_non_empty_str(key):
            raise SchemaInvalid(f"Field #{index} must have a valid key", index=index)
        if not _is_non_empty_str(field.get("label")):
            raise SchemaInvalid(f"Field '{key}' must have a valid label", field=key)

        field_type = field.get("type")
        if not _is_non_empty_str(field_type):
            raise SchemaInvalid(f"Field '{key}' must have a valid type", field=key)
        if field_type not in FIELD_TYPES:
            raise SchemaInvalid(
                f"Invalid field type for '{key}': {field_type}. Must be one of: {', '.join(FIELD_TYPES)}",
                field=key,
            )

        if field_type == FieldType.ENUM.value:
            options = field.get("options")
            if not isinstance(options, (list, tuple)) or len(options) == 0:
                raise SchemaInvalid(f"Enum field '{key}' must have a non-empty options array", field=key)

        for bound in ("min", "max"):
            if field.get(bound) is not None and not _is_number(field[bound]):
                raise SchemaInvalid(f"Field '{key}' {bound} must be a number", field=key)

        if key in seen:
            raise SchemaInvalid(f"Duplicate field key: {key}", field=key)
        seen.add(key)

    try:
        return ProductTypeSchema.model_validate({"fields": fields})
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise SchemaInvalid(f"Schema is malformed at {location}: {error['msg']}") from e


def _failure(field: FieldDefinition, message: str, rule: str) -> AttributeValidationFailed:
    return AttributeValidationFailed(
        f"Field '{field.label}' {message}", field=field.key, label=field.label, rule=rule
    )


def _check_bounds(field: FieldDefinition, size: float, unit: str = "") -> None:
    if field.min is not None and size < field.min:
        raise _failure(field, f"must be at least {field.min}{unit}", "min")
    if field.max is not None and size > field.max:
        raise _failure(field, f"must not exceed {field.max}{unit}", "max")


def _validate_string(field: FieldDefinition, value: Any) -> StringValue:
    if not isinstance(value, str):
        raise _failure(field, "must be a string", "type")
    _check_bounds(field, len(value), " characters")
    return StringValue(value=value)


def _validate_number(field: FieldDefinition, value: Any) -> NumberValue:
    if _is_number(value):
        raw = value
    elif isinstance(value, str):
        raw = value.strip()
    else:
        raise _failure(field, "must be a number", "type")

    try:
        number = float(raw)
    except (OverflowError, ValueError):
        raise _failure(field, "must be a number", "type") from None
    if not math.isfinite(number):
        raise _failure(field, "must be a number", "type")
    _check_bounds(field, number)
    return NumberValue(value=number)


def _validate_boolean(field: FieldDefinition, value: Any) -> BooleanValue:
    if not isinstance(value, bool):
        raise _failure(field, "must be a boolean", "type")
    return BooleanValue(value=value)


def _validate_enum(field: FieldDefinition, value: Any) -> EnumValue:
    options = field.options or []
    if not isinstance(value, str) or value not in options:
        raise _failure(field, f"must be one of: {', '.join(options)}", "options")
    return EnumValue(value=value)


def _validate_date(field: FieldDefinition, value: Any) -> DateValue:
    if isinstance(value, (datetime, date)):
        return DateValue(value=value)
    if isinstance(value, str):
        try:
            return DateValue(value=datetime.fromisoformat(value.strip()))
        except ValueError:
            pass
    raise _failure(field, "must be a valid date", "type")


def _validate_file(field: FieldDefinition, value: Any) -> FileValue:
    if not isinstance(value, str):
        raise _failure(field, "must be a file path/URL", "type")
    return FileValue(value=value)


def _validate_measurement(field: FieldDefinition, value: Any) -> MeasurementValue:
    if not isinstance(value, Mapping):
        raise _failure(field, "must be a measurement object", "type")
    amount = value.get("value")
    try:
        size = float(amount) if _is_number(amount) else math.nan
    except OverflowError:
        size = math.nan
    if not math.isfinite(size):
        raise _failure(field, "measurement value must be a number", "measurement_value")
    if not _is_non_empty_str(value.get("unit")):
        raise _failure(field, "measurement must have a unit", "measurement_unit")
    return MeasurementValue(value=size, unit=value["unit"])


FIELD_VALIDATORS: dict[FieldType, Callable[[FieldDefinition, Any], AttributeValue]] = {
    FieldType.STRING: _validate_string,
    FieldType.NUMBER: _validate_number,
    FieldType.BOOLEAN: _validate_boolean,
    FieldType.ENUM: _validate_enum,
    FieldType.DATE: _validate_date,
    FieldType.FILE: _validate_file,
    FieldType.MEASUREMENT: _validate_measurement,
}


def validate_attributes(schema: Any, attributes: Mapping[str, Any] | None) -> dict[str, AttributeValue]:
    """Validate an attribute payload against a product type schema.

    Checks run in three passes: required fields, unknown keys, then one
    type check per present field in schema-declaration order.

    Args:
        schema: A ProductTypeSchema, or a raw schema that is validated first.
        attributes: Attribute payload keyed by field key.

    Returns:
        dict[str, AttributeValue]: Typed values for every non-empty attribute.

    Raises:
        AttributeValidationFailed: On the first violation.
    """
    schema = validate_schema(schema)
    attributes = attributes or {}
    if not isinstance(attributes, Mapping):
        raise AttributeValidationFailed("Attributes must be an object", rule="type")

    for field in schema.fields:
        if field.required and _is_empty(attributes.get(field.key)):
            raise AttributeValidationFailed(
                f"Required field '{field.label}' is missing", field=field.key, label=field.label, rule="required"
            )

    for key in attributes:
        if schema.field(key) is None:
            raise AttributeValidationFailed(f"Unknown attribute: {key}", field=key, rule="unknown")

    typed: dict[str, AttributeValue] = {}
    for field in schema.fields:
        value = attributes.get(field.key)
        if _is_empty(value):
            continue
        typed[field.key] = FIELD_VALIDATORS[field.type](field, value)
    return typed


def dump_attributes(typed: Mapping[str, AttributeValue]) -> dict[str, Any]:
    """Convert typed attributes to their JSON storage form."""
    return _STORED_ATTRIBUTES.dump_python(dict(typed), mode="json")


def load_attributes(stored: Mapping[str, Any]) -> dict[str, AttributeValue]:
    """Rebuild typed attributes from their JSON storage form."""
    return _STORED_ATTRIBUTES.validate_python(dict(stored))
