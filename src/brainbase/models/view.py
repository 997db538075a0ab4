"""
View definitions - saved ways to look at a database's records.

Views are pure query descriptors embedded in the owning ``Database`` row:
- Table (spreadsheet-like)
- Board (cards grouped by a property)
- List, Calendar, Gallery, Timeline, Gantt
"""

from enum import Enum


class ViewType(str, Enum):
    """Supported view types."""

    TABLE = "table"
    BOARD = "board"
    LIST = "list"
    CALENDAR = "calendar"
    GALLERY = "gallery"
    TIMELINE = "timeline"
    GANTT = "gantt"


class FilterConjunction(str, Enum):
    AND = "and"
    OR = "or"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class GroupOrder(str, Enum):
    """Ordering of groups produced by a view's grouping."""

    ASC = "asc"
    DESC = "desc"
    MANUAL = "manual"


class FilterOperator(str, Enum):
    """Leaf filter operators."""

    # Comparison
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"

    # Text
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"

    # Emptiness
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"

    # Dates
    BEFORE = "before"
    AFTER = "after"
    ON_OR_BEFORE = "on_or_before"
    ON_OR_AFTER = "on_or_after"
    IS_TODAY = "is_today"
    IS_YESTERDAY = "is_yesterday"
    IS_TOMORROW = "is_tomorrow"
    IS_THIS_WEEK = "is_this_week"
    IS_LAST_WEEK = "is_last_week"
    IS_NEXT_WEEK = "is_next_week"
    IS_THIS_MONTH = "is_this_month"
    IS_LAST_MONTH = "is_last_month"
    IS_NEXT_MONTH = "is_next_month"

    # Selections
    IS = "is"
    IS_NOT = "is_not"
    IS_ANY_OF = "is_any_of"
    IS_NONE_OF = "is_none_of"

    # Checkbox
    IS_CHECKED = "is_checked"
    IS_UNCHECKED = "is_unchecked"

    # Relations
    CONTAINS_RELATION = "contains_relation"
    NOT_CONTAINS_RELATION = "not_contains_relation"
