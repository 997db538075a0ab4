"""
Property definitions - typed columns embedded in a database.

Properties are not a table of their own. They live as a JSON list on the
owning ``Database`` row; this module holds the closed enumerations that
describe them.
"""

from enum import Enum


class PropertyType(str, Enum):
    """Available property types."""

    # Basic Types
    TEXT = "text"
    RICH_TEXT = "rich_text"
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENT = "percent"
    CHECKBOX = "checkbox"
    DATE = "date"

    # Contact Types
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"

    # Selection Types
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    STATUS = "status"

    # Media Types
    FILE = "file"

    # Reference and Computed Types
    RELATION = "relation"
    ROLLUP = "rollup"
    FORMULA = "formula"

    # System Types
    CREATED_TIME = "created_time"
    LAST_EDITED_TIME = "last_edited_time"
    CREATED_BY = "created_by"
    LAST_EDITED_BY = "last_edited_by"


SYSTEM_PROPERTY_TYPES = frozenset(
    {
        PropertyType.CREATED_TIME,
        PropertyType.LAST_EDITED_TIME,
        PropertyType.CREATED_BY,
        PropertyType.LAST_EDITED_BY,
    }
)

COMPUTED_PROPERTY_TYPES = frozenset({PropertyType.ROLLUP, PropertyType.FORMULA})

NUMERIC_PROPERTY_TYPES = frozenset(
    {PropertyType.NUMBER, PropertyType.CURRENCY, PropertyType.PERCENT}
)

TEXT_PROPERTY_TYPES = frozenset(
    {
        PropertyType.TEXT,
        PropertyType.RICH_TEXT,
        PropertyType.URL,
        PropertyType.EMAIL,
        PropertyType.PHONE,
    }
)


class RelationType(str, Enum):
    """Cardinality of a relation property, seen from its owning database."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"

    @property
    def inverse(self) -> "RelationType":
        """Cardinality of the paired property on the target database."""
        return {
            RelationType.ONE_TO_MANY: RelationType.MANY_TO_ONE,
            RelationType.MANY_TO_ONE: RelationType.ONE_TO_MANY,
        }.get(self, self)


class DeletePolicy(str, Enum):
    """What happens to the other side of an edge when one endpoint is deleted."""

    CASCADE = "cascade"
    SET_NULL = "set_null"
    RESTRICT = "restrict"


class ErrorHandling(str, Enum):
    """How computed properties report runtime failures."""

    THROW = "throw"
    RETURN_NULL = "return_null"
    RETURN_DEFAULT = "return_default"


class RollupFunction(str, Enum):
    """Aggregations available to rollup properties."""

    COUNT = "count"
    COUNT_VALUES = "count_values"
    COUNT_UNIQUE = "count_unique"
    COUNT_EMPTY = "count_empty"
    COUNT_NOT_EMPTY = "count_not_empty"
    PERCENT_EMPTY = "percent_empty"
    PERCENT_NOT_EMPTY = "percent_not_empty"
    SUM = "sum"
    AVERAGE = "average"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    RANGE = "range"
    EARLIEST = "earliest"
    LATEST = "latest"
    DATE_RANGE = "date_range"
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    PERCENT_CHECKED = "percent_checked"
    SHOW_ORIGINAL = "show_original"
    SHOW_UNIQUE = "show_unique"
