"""Numeric property handlers: number, currency, percent."""

from decimal import Decimal
from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import NUMBER_OPERATORS, BasePropertyHandler


class NumberPropertyHandler(BasePropertyHandler):
    """
    Handler for number properties.

    Config:
        - precision: decimal places kept on write (optional)
        - min_value / max_value: inclusive bounds (optional)
        - format: display hint, not interpreted here
    """

    property_type = PropertyType.NUMBER
    data_type = "number"
    filter_operators = NUMBER_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValueError("Cannot convert boolean to number")
        if isinstance(value, int):
            return value
        if isinstance(value, Decimal):
            value = float(value)
        try:
            number = float(value)
        except (ValueError, TypeError):
            raise ValueError(f"Cannot convert {value!r} to number")
        return int(number) if number.is_integer() and not isinstance(value, float) else number

    @classmethod
    def serialize_with_config(cls, value: Any, config: dict[str, Any] | None) -> Any:
        number = cls.serialize(value)
        precision = (config or {}).get("precision")
        if number is not None and precision is not None and isinstance(number, float):
            number = round(number, int(precision))
        return number

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return value if isinstance(value, (int, float)) else float(value)

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        if isinstance(value, bool):
            raise ValueError("Number property does not accept booleans")
        try:
            num = float(value)
        except (ValueError, TypeError):
            raise ValueError(f"Number property requires numeric value, got {value!r}")

        config = config or {}
        min_value = config.get("min_value")
        if min_value is not None and num < min_value:
            raise ValueError(f"Number value must be >= {min_value}")
        max_value = config.get("max_value")
        if max_value is not None and num > max_value:
            raise ValueError(f"Number value must be <= {max_value}")
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        precision = config.get("precision")
        if precision is not None and (not isinstance(precision, int) or not 0 <= precision <= 10):
            raise ValueError("precision must be an integer between 0 and 10")
        min_value, max_value = config.get("min_value"), config.get("max_value")
        if min_value is not None and max_value is not None and min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return config


class CurrencyPropertyHandler(NumberPropertyHandler):
    """Number with a currency code (default USD) and two decimals."""

    property_type = PropertyType.CURRENCY

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = super().validate_config(config)
        code = config.setdefault("currency", "USD")
        if not isinstance(code, str) or len(code) != 3:
            raise ValueError("currency must be a three-letter code")
        config["currency"] = code.upper()
        config.setdefault("precision", 2)
        return config


class PercentPropertyHandler(NumberPropertyHandler):
    """Number stored as a percentage value (50 means 50%)."""

    property_type = PropertyType.PERCENT
