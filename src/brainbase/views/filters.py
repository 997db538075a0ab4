"""
Filter trees for views.

A filter tree is a recursive group ``{"operator": "and"|"or",
"conditions": [...]}`` whose conditions are leaves ``{"property_id",
"operator", "value"}`` or nested groups. Leaves are evaluated against a
record's resolved values, so computed properties can be filtered on.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Union

from brainbase.core.exceptions import ValidationError
from brainbase.models.view import FilterConjunction, FilterOperator
from brainbase.properties.types.date import parse_date_value


@dataclass
class FilterCondition:
    """Leaf condition on one property."""

    property_id: str
    operator: FilterOperator
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"property_id": self.property_id, "operator": self.operator.value, "value": self.value}


@dataclass
class FilterGroup:
    """AND/OR group of conditions; an empty group matches every record."""

    conjunction: FilterConjunction = FilterConjunction.AND
    conditions: list[Union[FilterCondition, "FilterGroup"]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operator": self.conjunction.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }

    def leaves(self) -> Iterable[FilterCondition]:
        for condition in self.conditions:
            if isinstance(condition, FilterGroup):
                yield from condition.leaves()
            else:
                yield condition


FilterNode = Union[FilterCondition, FilterGroup]


def parse_filter_tree(raw: Mapping[str, Any] | None) -> FilterGroup:
    """
    Build a filter tree from its stored form.

    Raises:
        ValidationError: Unknown operator or malformed node
    """
    if not raw:
        return FilterGroup()
    node = _parse_node(raw, "filters")
    if isinstance(node, FilterCondition):
        return FilterGroup(conditions=[node])
    return node


def _parse_node(raw: Any, path: str) -> FilterNode:
    if not isinstance(raw, Mapping):
        raise ValidationError(
            "Filter node must be an object", errors=[{"field": path, "message": "not an object"}]
        )

    if "conditions" in raw:
        try:
            conjunction = FilterConjunction(str(raw.get("operator", "and")).lower())
        except ValueError:
            raise ValidationError(
                f"Invalid filter group operator '{raw.get('operator')}'",
                errors=[{"field": f"{path}.operator", "message": "must be 'and' or 'or'"}],
            )
        conditions = raw.get("conditions") or []
        if not isinstance(conditions, list):
            raise ValidationError(
                "Filter conditions must be a list",
                errors=[{"field": f"{path}.conditions", "message": "not a list"}],
            )
        return FilterGroup(
            conjunction=conjunction,
            conditions=[
                _parse_node(child, f"{path}.conditions[{i}]") for i, child in enumerate(conditions)
            ],
        )

    property_id = raw.get("property_id")
    if not property_id:
        raise ValidationError(
            "Filter condition requires property_id",
            errors=[{"field": f"{path}.property_id", "message": "required"}],
        )
    try:
        operator = FilterOperator(raw.get("operator"))
    except ValueError:
        raise ValidationError(
            f"Unknown filter operator '{raw.get('operator')}'",
            errors=[{"field": f"{path}.operator", "message": "unknown operator"}],
        )
    return FilterCondition(property_id=str(property_id), operator=operator, value=raw.get("value"))


# =============================================================================
# Evaluation
# =============================================================================


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return bool(a) == bool(b) if a is not None and b is not None else a is b
    if isinstance(a, (int, float)) or isinstance(b, (int, float)):
        try:
            return float(a) == float(b)
        except (TypeError, ValueError):
            return False
    return a == b


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple, set)) else [value]


def _text(value: Any) -> str:
    return "" if value is None else str(value).casefold()


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _moment(value: Any) -> datetime | None:
    try:
        parsed = parse_date_value(value)
    except (TypeError, ValueError):
        return None
    if parsed is None:
        return None
    if isinstance(parsed, datetime):
        return parsed
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def _day(value: Any) -> date | None:
    moment = _moment(value)
    return moment.astimezone(timezone.utc).date() if moment else None


def _compare_dates(op: FilterOperator, actual: Any, expected: Any) -> bool:
    # Date-only targets compare on the calendar day
    left_day, right_day = _day(actual), _day(expected)
    if left_day is None or right_day is None:
        return False
    if op == FilterOperator.BEFORE:
        return left_day < right_day
    if op == FilterOperator.AFTER:
        return left_day > right_day
    if op == FilterOperator.ON_OR_BEFORE:
        return left_day <= right_day
    return left_day >= right_day


def _relative_date(op: FilterOperator, actual: Any, today: date) -> bool:
    day = _day(actual)
    if day is None:
        return False
    if op == FilterOperator.IS_TODAY:
        return day == today
    if op == FilterOperator.IS_YESTERDAY:
        return day == today - timedelta(days=1)
    if op == FilterOperator.IS_TOMORROW:
        return day == today + timedelta(days=1)

    if op in (FilterOperator.IS_THIS_WEEK, FilterOperator.IS_LAST_WEEK, FilterOperator.IS_NEXT_WEEK):
        week_start = today - timedelta(days=today.weekday())
        shift = {FilterOperator.IS_LAST_WEEK: -7, FilterOperator.IS_NEXT_WEEK: 7}.get(op, 0)
        start = week_start + timedelta(days=shift)
        return start <= day < start + timedelta(days=7)

    year, month = today.year, today.month
    if op == FilterOperator.IS_LAST_MONTH:
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    elif op == FilterOperator.IS_NEXT_MONTH:
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return (day.year, day.month) == (year, month)


RELATIVE_DATE_OPERATORS = frozenset(
    {
        FilterOperator.IS_TODAY,
        FilterOperator.IS_YESTERDAY,
        FilterOperator.IS_TOMORROW,
        FilterOperator.IS_THIS_WEEK,
        FilterOperator.IS_LAST_WEEK,
        FilterOperator.IS_NEXT_WEEK,
        FilterOperator.IS_THIS_MONTH,
        FilterOperator.IS_LAST_MONTH,
        FilterOperator.IS_NEXT_MONTH,
    }
)

DATE_COMPARISON_OPERATORS = frozenset(
    {
        FilterOperator.BEFORE,
        FilterOperator.AFTER,
        FilterOperator.ON_OR_BEFORE,
        FilterOperator.ON_OR_AFTER,
    }
)


def evaluate_condition(
    condition: FilterCondition, values: Mapping[str, Any], today: date | None = None
) -> bool:
    """Evaluate a leaf condition against a record's resolved values."""
    op = condition.operator
    actual = values.get(condition.property_id)
    expected = condition.value

    if op == FilterOperator.IS_EMPTY:
        return is_empty(actual)
    if op == FilterOperator.IS_NOT_EMPTY:
        return not is_empty(actual)

    if op == FilterOperator.IS_CHECKED:
        return actual is True
    if op == FilterOperator.IS_UNCHECKED:
        return actual is not True

    if op in (FilterOperator.EQUALS, FilterOperator.IS):
        if isinstance(actual, list):
            return any(_same(item, expected) for item in actual)
        return _same(actual, expected)
    if op in (FilterOperator.NOT_EQUALS, FilterOperator.IS_NOT):
        if isinstance(actual, list):
            return not any(_same(item, expected) for item in actual)
        return not _same(actual, expected)

    if op == FilterOperator.IS_ANY_OF:
        return any(_same(a, e) for a in _as_list(actual) for e in _as_list(expected))
    if op == FilterOperator.IS_NONE_OF:
        return not any(_same(a, e) for a in _as_list(actual) for e in _as_list(expected))

    if op in (FilterOperator.CONTAINS, FilterOperator.NOT_CONTAINS):
        if isinstance(actual, list):
            found = any(_same(item, expected) or _text(expected) in _text(item) for item in actual)
        else:
            found = not is_empty(actual) and _text(expected) in _text(actual)
        return found if op == FilterOperator.CONTAINS else not found
    if op == FilterOperator.STARTS_WITH:
        return not is_empty(actual) and _text(actual).startswith(_text(expected))
    if op == FilterOperator.ENDS_WITH:
        return not is_empty(actual) and _text(actual).endswith(_text(expected))

    if op in (
        FilterOperator.GREATER_THAN,
        FilterOperator.GREATER_THAN_OR_EQUAL,
        FilterOperator.LESS_THAN,
        FilterOperator.LESS_THAN_OR_EQUAL,
    ):
        left, right = _number(actual), _number(expected)
        if left is None or right is None:
            left_moment, right_moment = _moment(actual), _moment(expected)
            if left_moment is None or right_moment is None:
                return False
            left, right = left_moment.timestamp(), right_moment.timestamp()
        if op == FilterOperator.GREATER_THAN:
            return left > right
        if op == FilterOperator.GREATER_THAN_OR_EQUAL:
            return left >= right
        if op == FilterOperator.LESS_THAN:
            return left < right
        return left <= right

    if op in DATE_COMPARISON_OPERATORS:
        return _compare_dates(op, actual, expected)
    if op in RELATIVE_DATE_OPERATORS:
        return _relative_date(op, actual, today or datetime.now(timezone.utc).date())

    if op == FilterOperator.CONTAINS_RELATION:
        return str(expected) in [str(v) for v in _as_list(actual)]
    if op == FilterOperator.NOT_CONTAINS_RELATION:
        return str(expected) not in [str(v) for v in _as_list(actual)]

    raise ValidationError(f"Unsupported filter operator '{op.value}'")


def matches(node: FilterNode, values: Mapping[str, Any], today: date | None = None) -> bool:
    """Evaluate a filter tree; AND and OR short-circuit."""
    if isinstance(node, FilterCondition):
        return evaluate_condition(node, values, today)
    if not node.conditions:
        return True
    if node.conjunction == FilterConjunction.OR:
        return any(matches(child, values, today) for child in node.conditions)
    return all(matches(child, values, today) for child in node.conditions)
