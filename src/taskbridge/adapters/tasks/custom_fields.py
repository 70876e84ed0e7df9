"""Codec for board custom field items.

A board custom field item carries exactly one of three typed payloads::

    {"value": {"checked": "true"}}
    {"value": {"text": "some text"}}
    {"value": {"number": "3"}}

An unchecked checkbox may come back as ``{"value": null}`` and a field is
cleared by sending ``{"value": ""}``. The payloads are modelled as explicit
variants so that every conversion is a closed set of cases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union


class UnsupportedTypeError(TypeError):
    """Raised when a value does not fit the board custom field type model."""


@dataclass(frozen=True)
class Checked:
    checked: bool


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Number:
    number: int | float


@dataclass(frozen=True)
class Cleared:
    pass


CustomFieldValue = Union[Checked, Text, Number, Cleared]

CLEARED = Cleared()


def encode(value: Any) -> CustomFieldValue:
    """Pick the variant for a plain Python value."""

    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return Checked(value)
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, (int, float)):
        return Number(value)
    raise UnsupportedTypeError(f"unsupported type for board custom field: {type(value).__name__}")


def to_raw(variant: CustomFieldValue) -> Dict[str, Any]:
    if isinstance(variant, Checked):
        return {"value": {"checked": "true" if variant.checked else "false"}}
    if isinstance(variant, Text):
        return {"value": {"text": variant.text}}
    if isinstance(variant, Number):
        return {"value": {"number": str(variant.number)}}
    if isinstance(variant, Cleared):
        return {"value": ""}
    raise UnsupportedTypeError(f"unknown custom field variant: {variant!r}")


def from_raw(item: Mapping[str, Any]) -> CustomFieldValue:
    value = item.get("value")
    if value is None:
        return Checked(False)
    if value == "":
        return CLEARED
    if not isinstance(value, Mapping):
        raise UnsupportedTypeError(f"custom field contains unknown value type: {item!r}")
    if "checked" in value:
        return Checked(str(value["checked"]).lower() == "true")
    if "number" in value:
        return Number(_parse_number(value["number"]))
    if "text" in value:
        return Text(str(value["text"]))
    raise UnsupportedTypeError(f"custom field contains unknown value type: {item!r}")


def value_to_custom_field(value: Any) -> Dict[str, Any]:
    return to_raw(encode(value))


def custom_field_to_value(item: Mapping[str, Any] | None) -> Any:
    """Decode a raw item into a plain value; ``None`` when absent or cleared."""

    if item is None:
        return None
    variant = from_raw(item)
    if isinstance(variant, Checked):
        return variant.checked
    if isinstance(variant, Text):
        return variant.text
    if isinstance(variant, Number):
        return variant.number
    return None


def _parse_number(raw: Any) -> int | float:
    try:
        number = float(raw)
    except (TypeError, ValueError) as exc:
        raise UnsupportedTypeError(f"custom field number is not numeric: {raw!r}") from exc
    if number.is_integer():
        return int(number)
    return number


__all__ = [
    "CLEARED",
    "Checked",
    "Cleared",
    "CustomFieldValue",
    "Number",
    "Text",
    "UnsupportedTypeError",
    "custom_field_to_value",
    "encode",
    "from_raw",
    "to_raw",
    "value_to_custom_field",
]
