"""Base class for property type handlers."""

import re
from abc import ABC, abstractmethod
from typing import Any

from brainbase.models.property import PropertyType
from brainbase.models.view import FilterOperator as Op

# Operator families shared by several handlers
EMPTINESS_OPERATORS = frozenset({Op.IS_EMPTY, Op.IS_NOT_EMPTY})
TEXT_OPERATORS = EMPTINESS_OPERATORS | {
    Op.EQUALS,
    Op.NOT_EQUALS,
    Op.CONTAINS,
    Op.NOT_CONTAINS,
    Op.STARTS_WITH,
    Op.ENDS_WITH,
}
NUMBER_OPERATORS = EMPTINESS_OPERATORS | {
    Op.EQUALS,
    Op.NOT_EQUALS,
    Op.GREATER_THAN,
    Op.GREATER_THAN_OR_EQUAL,
    Op.LESS_THAN,
    Op.LESS_THAN_OR_EQUAL,
}
DATE_OPERATORS = EMPTINESS_OPERATORS | {
    Op.EQUALS,
    Op.NOT_EQUALS,
    Op.BEFORE,
    Op.AFTER,
    Op.ON_OR_BEFORE,
    Op.ON_OR_AFTER,
    Op.IS_TODAY,
    Op.IS_YESTERDAY,
    Op.IS_TOMORROW,
    Op.IS_THIS_WEEK,
    Op.IS_LAST_WEEK,
    Op.IS_NEXT_WEEK,
    Op.IS_THIS_MONTH,
    Op.IS_LAST_MONTH,
    Op.IS_NEXT_MONTH,
}
SELECT_OPERATORS = EMPTINESS_OPERATORS | {
    Op.EQUALS,
    Op.NOT_EQUALS,
    Op.IS,
    Op.IS_NOT,
    Op.IS_ANY_OF,
    Op.IS_NONE_OF,
}
MULTI_SELECT_OPERATORS = SELECT_OPERATORS | {Op.CONTAINS, Op.NOT_CONTAINS}
CHECKBOX_OPERATORS = frozenset({Op.IS_CHECKED, Op.IS_UNCHECKED, Op.EQUALS, Op.NOT_EQUALS})
RELATION_OPERATORS = EMPTINESS_OPERATORS | {Op.CONTAINS_RELATION, Op.NOT_CONTAINS_RELATION}
ALL_OPERATORS = frozenset(Op)


class BasePropertyHandler(ABC):
    """
    Base class for property type handlers.

    Each property type implements value validation, conversion to and from
    the stored JSON form, and validation of its per-instance ``config``.

    Example:
        class MyPropertyHandler(BasePropertyHandler):
            property_type = PropertyType.TEXT

            @classmethod
            def validate(cls, value, config=None) -> bool:
                if value is None:
                    return True
                if not isinstance(value, str):
                    raise ValueError("expected text")
                return True
    """

    property_type: PropertyType

    # Value type seen by formulas: number, text, boolean, date, array, any
    data_type: str = "any"

    # Filter operators a view may use against this property
    filter_operators: frozenset[Op] = EMPTINESS_OPERATORS

    @classmethod
    @abstractmethod
    def serialize(cls, value: Any) -> Any:
        """
        Convert a Python value to its stored JSON form.

        Raises:
            ValueError: If the value cannot be converted
        """

    @classmethod
    def serialize_with_config(cls, value: Any, config: dict[str, Any] | None) -> Any:
        """Serialize, applying config-dependent normalization (precision, option ids)."""
        return cls.serialize(value)

    @classmethod
    @abstractmethod
    def deserialize(cls, value: Any) -> Any:
        """Convert a stored value back to its Python form."""

    @classmethod
    @abstractmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        """
        Validate a value against the property's configuration.

        Returns:
            True if valid

        Raises:
            ValueError: If validation fails
        """

    @classmethod
    def default(cls) -> Any:
        return None

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        """
        Check and normalize a property configuration.

        Returns:
            The normalized configuration

        Raises:
            ValueError: If required keys are missing or malformed
        """
        return dict(config)

    @classmethod
    def is_computed(cls) -> bool:
        return False

    @classmethod
    def is_read_only(cls) -> bool:
        """Read-only properties cannot be written by callers."""
        return cls.is_computed()

    @classmethod
    def _validate_regex(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        """Match ``value`` against ``config["regex"]`` when one is set."""
        if not config or not config.get("regex"):
            return True
        if value is None or value == "":
            return True

        pattern_text = config["regex"]
        try:
            pattern = re.compile(pattern_text)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {pattern_text} - {e}")

        if not pattern.match(str(value)):
            raise ValueError(f"Value '{value}' does not match required pattern: {pattern_text}")
        return True
