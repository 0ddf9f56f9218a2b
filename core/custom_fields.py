"""Custom field values attached to CRM records.

A value is one of a closed set of kinds, tagged by `type` in JSON:

    {"type": "string", "value": "Gold"}
    {"type": "number", "value": 12.5}
    {"type": "boolean", "value": true}
    {"type": "date", "value": "2026-01-31"}
    {"type": "null"}
"""

from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _FieldValue(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class StringValue(_FieldValue):
    type: Literal["string"] = "string"
    value: str = Field(..., max_length=5000)


class NumberValue(_FieldValue):
    type: Literal["number"] = "number"
    value: float


class BooleanValue(_FieldValue):
    type: Literal["boolean"] = "boolean"
    value: bool


class DateValue(_FieldValue):
    type: Literal["date"] = "date"
    value: date


class NullValue(_FieldValue):
    type: Literal["null"] = "null"

    @property
    def value(self) -> None:
        return None


CustomFieldValue = Annotated[
    Union[StringValue, NumberValue, BooleanValue, DateValue, NullValue],
    Field(discriminator="type"),
]

_custom_fields_adapter = TypeAdapter(dict[str, CustomFieldValue])


def parse_custom_fields(raw: dict[str, Any]) -> dict[str, CustomFieldValue]:
    """Validate tagged JSON. Raises pydantic.ValidationError on unknown kinds."""
    return _custom_fields_adapter.validate_python(raw)


def dump_custom_fields(fields: dict[str, CustomFieldValue]) -> dict[str, Any]:
    return _custom_fields_adapter.dump_python(fields, mode="json")


def to_field_value(value: Any) -> CustomFieldValue:
    """
    Tag a plain Python value.

    bool is checked before number since bool is an int subclass.

    Raises:
        TypeError: For values outside the supported kinds.
    """
    if value is None:
        return NullValue()
    if isinstance(value, bool):
        return BooleanValue(value=value)
    if isinstance(value, (int, float)):
        return NumberValue(value=value)
    if isinstance(value, date):
        return DateValue(value=value)
    if isinstance(value, str):
        return StringValue(value=value)
    raise TypeError(f"Unsupported custom field type: {type(value).__name__}")
