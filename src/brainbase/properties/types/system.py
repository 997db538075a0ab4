"""System property handlers.

System properties are maintained by the record store from record
metadata and can never be written by callers.
"""

from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import (
    DATE_OPERATORS,
    TEXT_OPERATORS,
    BasePropertyHandler,
)


class SystemPropertyHandler(BasePropertyHandler):
    """Base class for read-only properties derived from record metadata."""

    # Record attribute the value is read from
    source_attribute: str = ""

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return value.isoformat() if hasattr(value, "isoformat") else str(value)

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        raise ValueError(f"{cls.property_type.value} is a system property and cannot be set")

    @classmethod
    def is_read_only(cls) -> bool:
        return True


class CreatedTimePropertyHandler(SystemPropertyHandler):
    property_type = PropertyType.CREATED_TIME
    data_type = "date"
    filter_operators = DATE_OPERATORS
    source_attribute = "created_at"


class LastEditedTimePropertyHandler(SystemPropertyHandler):
    property_type = PropertyType.LAST_EDITED_TIME
    data_type = "date"
    filter_operators = DATE_OPERATORS
    source_attribute = "updated_at"


class CreatedByPropertyHandler(SystemPropertyHandler):
    property_type = PropertyType.CREATED_BY
    data_type = "text"
    filter_operators = TEXT_OPERATORS
    source_attribute = "created_by_id"


class LastEditedByPropertyHandler(SystemPropertyHandler):
    property_type = PropertyType.LAST_EDITED_BY
    data_type = "text"
    filter_operators = TEXT_OPERATORS
    source_attribute = "last_edited_by_id"
