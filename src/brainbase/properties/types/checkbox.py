"""Checkbox property type handler."""

from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import CHECKBOX_OPERATORS, BasePropertyHandler


class CheckboxPropertyHandler(BasePropertyHandler):
    """
    Handler for checkbox properties.

    Accepts booleans and the usual truthy/falsy strings and numbers.
    """

    property_type = PropertyType.CHECKBOX
    data_type = "boolean"
    filter_operators = CHECKBOX_OPERATORS

    TRUE_STRINGS = {"true", "yes", "1", "on", "checked"}
    FALSE_STRINGS = {"false", "no", "0", "off", "unchecked", ""}

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in cls.TRUE_STRINGS:
                return True
            if lowered in cls.FALSE_STRINGS:
                return False
        raise ValueError(f"Cannot convert {value!r} to checkbox")

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return bool(value)

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        cls.serialize(value)
        return True

    @classmethod
    def default(cls) -> Any:
        return False
