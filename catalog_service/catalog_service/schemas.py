"""Pydantic models for product type schemas and typed attribute values."""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FieldType(str, Enum):
    """The fixed set of attribute field types."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    DATE = "date"
    FILE = "file"
    MEASUREMENT = "measurement"


FIELD_TYPES = tuple(t.value for t in FieldType)


class FieldDefinition(BaseModel):
    """One typed custom attribute of a product type.

    Attributes:
        key (str): Attribute key, unique within the schema.
        label (str): Human readable name used in error messages.
        type (FieldType): Value shape the attribute must have.
        required (bool): Whether products must provide a non-empty value.
        min (float | None): Lower bound (length for strings, value for numbers).
        max (float | None): Upper bound (length for strings, value for numbers).
        options (list[str] | None): Allowed values for enum fields.
        unit (str | None): Default unit hint for measurement fields.
    """

    key: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    type: FieldType
    required: bool = False
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    options: Optional[list[str]] = None
    unit: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {"key": "screen_size", "label": "Screen size", "type": "number", "min": 1, "max": 100}
        },
    )


class ProductTypeSchema(BaseModel):
    """Ordered field definitions for one product type."""

    fields: tuple[FieldDefinition, ...] = ()

    model_config = ConfigDict(frozen=True)

    def field(self, key: str) -> Optional[FieldDefinition]:
        return next((f for f in self.fields if f.key == key), None)


# Typed attribute values, one variant per field type.


class StringValue(BaseModel):
    kind: Literal["string"] = "string"
    value: str


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    value: float


class BooleanValue(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class EnumValue(BaseModel):
    kind: Literal["enum"] = "enum"
    value: str


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    value: Union[datetime, date]


class FileValue(BaseModel):
    kind: Literal["file"] = "file"
    value: str


class MeasurementValue(BaseModel):
    kind: Literal["measurement"] = "measurement"
    value: float
    unit: str = Field(..., min_length=1)


AttributeValue = Annotated[
    Union[StringValue, NumberValue, BooleanValue, EnumValue, DateValue, FileValue, MeasurementValue],
    Field(discriminator="kind"),
]


class ProductType(BaseModel):
    """A stored product type."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    field_schema: ProductTypeSchema
    active: bool = True
    sort_order: int = 0


class Product(BaseModel):
    """A stored product whose attributes conform to its type's schema."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type_id: str
    title: str = Field(..., min_length=1)
    base_price: float = Field(..., ge=0)
    currency: str = "USD"
    attributes: dict[str, Any] = Field(default_factory=dict, description="Attributes in storage (JSON) form")


class ProductTypeCreate(BaseModel):
    """Request body for creating a product type; the schema stays raw until validated."""

    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    schema_json: Any
    active: bool = True
    sort_order: int = 0


class ProductTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = Field(default=None, min_length=1)
    schema_json: Optional[Any] = None
    active: Optional[bool] = None
    sort_order: Optional[int] = None


class ProductCreate(BaseModel):
    type_id: str
    title: str = Field(..., min_length=1)
    base_price: float = Field(..., ge=0)
    currency: str = "USD"
    attributes: dict[str, Any] = Field(default_factory=dict)


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    base_price: Optional[float] = Field(default=None, ge=0)
    attributes: Optional[dict[str, Any]] = None
