"""Unit tests for view filter trees."""

from datetime import date

import pytest

from brainbase.core.exceptions import ValidationError
from brainbase.models.view import FilterConjunction, FilterOperator
from brainbase.views import ViewRecord, apply_filters, parse_filter_tree
from brainbase.views.filters import FilterCondition, evaluate_condition, matches

TODAY = date(2024, 5, 15)  # a Wednesday


def check(operator: str, actual, expected=None, today: date = TODAY) -> bool:
    condition = FilterCondition("p", FilterOperator(operator), expected)
    return evaluate_condition(condition, {"p": actual}, today)


@pytest.fixture
def tasks() -> list[ViewRecord]:
    return [
        ViewRecord("t1", {"status": "Todo", "hours": 3, "title": "Write docs"}),
        ViewRecord("t2", {"status": "Done", "hours": 5, "title": "Ship it"}),
        ViewRecord("t3", {"status": "Todo", "hours": 1, "title": "Review"}),
        ViewRecord("t4", {"status": "Doing", "hours": None, "title": "Plan"}),
        ViewRecord("t5", {"status": None, "hours": 8, "title": "Refactor docs"}),
    ]


class TestParseFilterTree:
    """Tests for parse_filter_tree."""

    def test_empty_tree(self):
        tree = parse_filter_tree(None)
        assert tree.conditions == []
        assert tree.conjunction == FilterConjunction.AND

    def test_single_leaf_is_wrapped(self):
        tree = parse_filter_tree({"property_id": "p", "operator": "equals", "value": 1})
        assert len(tree.conditions) == 1
        assert tree.conditions[0].operator == FilterOperator.EQUALS

    def test_nested_groups(self):
        tree = parse_filter_tree(
            {
                "operator": "OR",
                "conditions": [
                    {"property_id": "a", "operator": "is_empty"},
                    {
                        "operator": "and",
                        "conditions": [{"property_id": "b", "operator": "is_checked"}],
                    },
                ],
            }
        )
        assert tree.conjunction == FilterConjunction.OR
        assert [leaf.property_id for leaf in tree.leaves()] == ["a", "b"]

    def test_round_trips_through_to_dict(self):
        raw = {
            "operator": "and",
            "conditions": [{"property_id": "a", "operator": "contains", "value": "x"}],
        }
        assert parse_filter_tree(raw).to_dict() == raw

    def test_unknown_operator(self):
        with pytest.raises(ValidationError, match="Unknown filter operator 'like'"):
            parse_filter_tree({"property_id": "p", "operator": "like"})

    def test_missing_property_id(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_filter_tree({"operator": "and", "conditions": [{"operator": "equals"}]})
        assert exc_info.value.details["errors"][0]["field"] == "filters.conditions[0].property_id"

    def test_bad_group_operator(self):
        with pytest.raises(ValidationError, match="Invalid filter group operator"):
            parse_filter_tree({"operator": "xor", "conditions": []})


class TestConditions:
    """Tests for individual operators."""

    def test_equals_is_case_sensitive(self):
        assert check("equals", "Todo", "Todo")
        assert not check("equals", "Todo", "todo")

    def test_equals_compares_numbers_numerically(self):
        assert check("equals", 5, "5.0")

    def test_equals_on_list_matches_any_item(self):
        assert check("equals", ["a", "b"], "b")
        assert check("not_equals", ["a", "b"], "c")

    def test_contains_is_case_insensitive(self):
        assert check("contains", "Write Docs", "docs")
        assert check("not_contains", "Write", "docs")
        assert not check("contains", None, "docs")

    def test_starts_and_ends_with(self):
        assert check("starts_with", "Refactor", "re")
        assert check("ends_with", "Refactor", "TOR")

    def test_emptiness(self):
        assert check("is_empty", None)
        assert check("is_empty", [])
        assert check("is_not_empty", 0)

    def test_numeric_comparison(self):
        assert check("greater_than", 5, 3)
        assert check("less_than_or_equal", "3", 3)
        assert not check("greater_than", None, 3)

    def test_any_of_and_none_of(self):
        assert check("is_any_of", "Todo", ["Todo", "Doing"])
        assert check("is_none_of", ["Done"], ["Todo", "Doing"])

    def test_checkbox(self):
        assert check("is_checked", True)
        assert check("is_unchecked", None)

    def test_relation_membership(self):
        assert check("contains_relation", ["r1", "r2"], "r2")
        assert check("not_contains_relation", None, "r2")

    def test_date_only_target_compares_calendar_day(self):
        assert not check("before", "2024-05-15T08:00:00Z", "2024-05-15")
        assert check("on_or_before", "2024-05-15T23:00:00Z", "2024-05-15")
        assert check("after", "2024-05-16", "2024-05-15")

    def test_unparseable_date_never_matches(self):
        assert not check("before", "someday", "2024-05-15")

    def test_relative_days(self):
        assert check("is_today", "2024-05-15")
        assert check("is_yesterday", "2024-05-14")
        assert check("is_tomorrow", "2024-05-16T10:00:00Z")

    def test_relative_weeks_start_on_monday(self):
        assert check("is_this_week", "2024-05-13")
        assert check("is_this_week", "2024-05-19")
        assert check("is_last_week", "2024-05-12")
        assert check("is_next_week", "2024-05-20")

    def test_relative_months_wrap_years(self):
        assert check("is_last_month", "2023-12-31", today=date(2024, 1, 10))
        assert check("is_next_month", "2025-01-01", today=date(2024, 12, 10))
        assert check("is_this_month", "2024-05-01")


class TestApplyFilters:
    """Tests for filtering record lists."""

    def test_status_filter_keeps_input_order(self, tasks):
        tree = parse_filter_tree({"property_id": "status", "operator": "equals", "value": "Todo"})
        assert [r.id for r in apply_filters(tasks, tree)] == ["t1", "t3"]

    def test_filtering_is_idempotent(self, tasks):
        tree = parse_filter_tree(
            {
                "operator": "or",
                "conditions": [
                    {"property_id": "hours", "operator": "greater_than", "value": 4},
                    {"property_id": "title", "operator": "contains", "value": "docs"},
                ],
            }
        )
        once = apply_filters(tasks, tree)
        assert [r.id for r in once] == ["t1", "t2", "t5"]
        assert apply_filters(once, tree) == once

    def test_empty_tree_matches_everything(self, tasks):
        assert apply_filters(tasks, parse_filter_tree({})) == tasks

    def test_and_group(self, tasks):
        tree = parse_filter_tree(
            {
                "operator": "and",
                "conditions": [
                    {"property_id": "status", "operator": "is_not_empty"},
                    {"property_id": "hours", "operator": "less_than", "value": 4},
                ],
            }
        )
        assert [r.id for r in apply_filters(tasks, tree)] == ["t1", "t3"]

    def test_empty_nested_group_matches(self):
        tree = parse_filter_tree({"operator": "and", "conditions": [{"conditions": []}]})
        assert matches(tree, {})
