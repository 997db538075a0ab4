"""Formula property type handler."""

from datetime import date, datetime
from typing import Any

from brainbase.core.exceptions import FormulaSyntaxError
from brainbase.formula.parser import parse_formula
from brainbase.models.property import ErrorHandling, PropertyType
from brainbase.properties.base import ALL_OPERATORS, BasePropertyHandler

RETURN_TYPES = frozenset({"number", "text", "boolean", "date", "array", "any"})


class FormulaPropertyHandler(BasePropertyHandler):
    """
    Handler for formula properties.

    Config:
        - expression: formula source (required, must parse)
        - return_type: declared result type (default: any)
        - dependencies: property ids the expression reads; derived on save
        - cache_enabled: keep evaluated results (default: True)
        - cache_ttl: cache lifetime in seconds (default: from settings)
        - error_handling: return_null (default), return_default or throw
        - default_value: result under return_default
        - precision: decimal places for numeric results
    """

    property_type = PropertyType.FORMULA
    filter_operators = ALL_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, tuple):
            return [cls.serialize(v) for v in value]
        if isinstance(value, list):
            return [cls.serialize(v) for v in value]
        return value

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        raise ValueError("Formula properties are computed and cannot be set")

    @classmethod
    def is_computed(cls) -> bool:
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        expression = config.get("expression")
        if not isinstance(expression, str) or not expression.strip():
            raise ValueError("Formula property requires an expression")
        try:
            parse_formula(expression)
        except FormulaSyntaxError as e:
            raise ValueError(e.message)

        return_type = config.setdefault("return_type", "any")
        if return_type not in RETURN_TYPES:
            raise ValueError(f"Invalid return_type '{return_type}'")

        try:
            config["error_handling"] = ErrorHandling(
                config.get("error_handling", ErrorHandling.RETURN_NULL)
            ).value
        except ValueError:
            raise ValueError(f"Invalid error_handling '{config.get('error_handling')}'")

        config.setdefault("cache_enabled", True)
        ttl = config.setdefault("cache_ttl", None)
        if ttl is not None and (not isinstance(ttl, int) or ttl < 0):
            raise ValueError("cache_ttl must be a non-negative integer")

        precision = config.setdefault("precision", None)
        if precision is not None and (not isinstance(precision, int) or not 0 <= precision <= 10):
            raise ValueError("precision must be an integer between 0 and 10")

        config.setdefault("default_value", None)
        config.setdefault("dependencies", [])
        return config
