"""Unit tests for ComputedValueResolver over hand-built snapshots."""

from datetime import datetime, timezone

import pytest

from brainbase.core.exceptions import (
    CircularDependencyError,
    FormulaLimitError,
    FormulaRuntimeError,
    TypeMismatchError,
)
from brainbase.formula.resolver import (
    ComputedValueResolver,
    EvaluationSnapshot,
    RecordSnapshot,
    infer_data_type,
    to_json_value,
)


def formula(prop_id: str, name: str, expression: str, **config) -> dict:
    return {
        "id": prop_id,
        "name": name,
        "type": "formula",
        "config": {"expression": expression, **config},
    }


def rollup(prop_id: str, name: str, function: str, target: str | None = None, **config) -> dict:
    return {
        "id": prop_id,
        "name": name,
        "type": "rollup",
        "config": {
            "relation_property_id": "p-tasks",
            "rollup_function": function,
            "target_property_id": target,
            **config,
        },
    }


@pytest.fixture
def snapshot() -> EvaluationSnapshot:
    snap = EvaluationSnapshot()
    snap.add_schema(
        "tasks",
        [
            {"id": "t-title", "name": "Title", "type": "text", "config": {}},
            {"id": "t-hours", "name": "Hours", "type": "number", "config": {}},
            formula("t-double", "Double", "{Hours} * 2"),
            formula("t-third", "Third", "{Hours} / 3", precision=2),
            formula("t-rated", "Rated", "$rate * {Hours}"),
            formula("t-nested", "Nested", "{Rated} + 1"),
            formula("t-bad", "Bad", 'LEN("a", "b")'),
            formula("t-bad-throw", "Bad Throw", 'LEN("a", "b")', error_handling="throw"),
            formula(
                "t-bad-default",
                "Bad Default",
                'LEN("a", "b")',
                error_handling="return_default",
                default_value=-1,
            ),
            {"id": "t-created", "name": "Created", "type": "created_time", "config": {}},
        ],
    )
    snap.add_schema(
        "projects",
        [
            {"id": "p-name", "name": "Name", "type": "text", "config": {}},
            {
                "id": "p-tasks",
                "name": "Tasks",
                "type": "relation",
                "config": {"target_database_id": "tasks"},
            },
            rollup("p-count", "Task Count", "count"),
            rollup("p-hours", "Total Hours", "sum", "t-hours"),
            rollup("p-doubled", "Doubled Hours", "sum", "t-double"),
            rollup("p-title-sum", "Title Sum", "sum", "t-title", error_handling="return_null"),
            rollup("p-title-throw", "Title Throw", "sum", "t-title", error_handling="throw"),
            formula("p-summary", "Summary", '{Name} & ": " & {Total Hours}'),
        ],
    )
    snap.add_record(
        RecordSnapshot(
            id="t1",
            database_id="tasks",
            values={"t-title": "Write", "t-hours": 2},
            created_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
        )
    )
    snap.add_record(
        RecordSnapshot(id="t2", database_id="tasks", values={"t-title": "Test", "t-hours": 3.5})
    )
    snap.add_record(
        RecordSnapshot(
            id="p1",
            database_id="projects",
            values={"p-name": "Launch", "p-tasks": ["t1", "t2", "gone"]},
        )
    )
    return snap


class TestHelpers:
    def test_to_json_value(self):
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert to_json_value({"when": [moment]}) == {"when": ["2024-01-01T00:00:00+00:00"]}

    def test_infer_data_type(self):
        assert infer_data_type(None) == "null"
        assert infer_data_type(True) == "boolean"
        assert infer_data_type(1.5) == "number"
        assert infer_data_type(["a"]) == "array"
        assert infer_data_type("a") == "text"


class TestStoredAndFormulaValues:
    """Tests for plain values and formula evaluation."""

    def test_stored_value(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("t1", "t-title") == "Write"

    def test_formula_value(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.resolve("t1", "t-double") == 4
        assert resolver.resolve("t2", "t-double") == 7

    def test_system_property_comes_from_record(self, snapshot):
        value = ComputedValueResolver(snapshot).resolve("t1", "t-created")
        assert value.startswith("2024-01-01T09:00:00")

    def test_unknown_record_or_property(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.resolve("missing", "t-title") is None
        assert resolver.resolve("t1", "missing") is None

    def test_precision_rounds_and_warns(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.resolve("t1", "t-third") == 0.67
        assert resolver.warnings[0].warning_type == "precision_loss"

    def test_resolve_record_includes_computed_values(self, snapshot):
        values = ComputedValueResolver(snapshot).resolve_record("p1")
        assert values["p-count"] == 2
        assert values["p-hours"] == 5.5
        assert values["p-summary"] == "Launch: 5.5"

    def test_resolve_record_blanks_a_failing_property(self, snapshot):
        resolver = ComputedValueResolver(snapshot)

        values = resolver.resolve_record("p1")

        assert values["p-title-throw"] is None
        assert values["p-hours"] == 5.5
        failed = [w for w in resolver.warnings if w.warning_type == "runtime"]
        assert [w.details["property_id"] for w in failed] == ["p-title-throw"]

    def test_resolve_record_keeps_formula_throw_local(self, snapshot):
        resolver = ComputedValueResolver(snapshot)

        values = resolver.resolve_record("t1")

        assert values["t-bad-throw"] is None
        assert values["t-bad-default"] == -1
        assert values["t-double"] == 4
        failed = [w.to_dict() for w in resolver.warnings if w.warning_type == "runtime"]
        assert [(w["property_id"], w["code"]) for w in failed] == [
            ("t-bad-throw", "FORMULA_RUNTIME_ERROR")
        ]

    def test_resolution_is_deterministic(self, snapshot):
        first = ComputedValueResolver(snapshot).resolve_record("p1")
        second = ComputedValueResolver(snapshot).resolve_record("p1")
        assert first == second


class TestVariables:
    """Tests for caller-supplied variables."""

    def test_variables_reach_the_formula(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.evaluate("t1", "t-rated", {"rate": 10}) == 20

    def test_without_variables_the_value_is_blank(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("t1", "t-rated") is None

    def test_variables_do_not_reach_referenced_formulas(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        # Rated is computed without $rate, so it is blank and the sum falls back to 1
        assert resolver.evaluate("t1", "t-nested", {"rate": 10}) == 1

    def test_ad_hoc_expression(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.evaluate_expression("t2", "{Hours} + $bonus", {"bonus": 1}) == 4.5

    def test_ad_hoc_expression_unknown_reference(self, snapshot):
        with pytest.raises(FormulaRuntimeError):
            ComputedValueResolver(snapshot).evaluate_expression("t1", "{Nope}")


class TestErrorHandling:
    """Tests for per-property error policies."""

    def test_return_null(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("t1", "t-bad") is None

    def test_return_default(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("t1", "t-bad-default") == -1

    def test_throw(self, snapshot):
        with pytest.raises(FormulaRuntimeError):
            ComputedValueResolver(snapshot).resolve("t1", "t-bad-throw")

    @pytest.mark.parametrize(
        "expression", ["TODAY() + 1000000000", "(0 - 8) ^ 0.5", 'REPT("x", 1e12)']
    )
    def test_operator_failures_follow_the_policy(self, expression):
        snap = EvaluationSnapshot()
        snap.add_schema("calc", [formula("f", "F", expression)])
        snap.add_record(RecordSnapshot(id="r1", database_id="calc", values={}))

        assert ComputedValueResolver(snap).resolve("r1", "f") is None

    def test_date_difference_is_json_ready(self):
        snap = EvaluationSnapshot()
        snap.add_schema("calc", [formula("f", "F", "NOW() - TODAY()")])
        snap.add_record(RecordSnapshot(id="r1", database_id="calc", values={}))

        assert ComputedValueResolver(snap).resolve("r1", "f") == 0

    def test_step_limit_is_never_swallowed(self, snapshot):
        resolver = ComputedValueResolver(snapshot, max_steps=2)
        with pytest.raises(FormulaLimitError):
            resolver.resolve("t1", "t-double")


class TestRollups:
    """Tests for rollups computed through relations."""

    def test_count_includes_every_linked_record_in_snapshot(self, snapshot):
        # "gone" is not in the snapshot and is skipped
        assert ComputedValueResolver(snapshot).resolve("p1", "p-count") == 2

    def test_sum_over_stored_numbers(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("p1", "p-hours") == 5.5

    def test_sum_over_formula_target(self, snapshot):
        assert ComputedValueResolver(snapshot).resolve("p1", "p-doubled") == 11

    def test_non_numeric_target_return_null(self, snapshot):
        resolver = ComputedValueResolver(snapshot)
        assert resolver.resolve("p1", "p-title-sum") is None
        assert [w.warning_type for w in resolver.warnings] == ["type_coercion"]

    def test_non_numeric_target_throw(self, snapshot):
        with pytest.raises(TypeMismatchError):
            ComputedValueResolver(snapshot).resolve("p1", "p-title-throw")


class TestCycles:
    """Tests for runtime cycle and depth detection."""

    @pytest.fixture
    def loop_snapshot(self) -> EvaluationSnapshot:
        snap = EvaluationSnapshot()
        snap.add_schema(
            "loop",
            [
                formula("a", "A", "{B} + 1"),
                formula("b", "B", "{A} + 1"),
                formula("c1", "C1", "{C2}"),
                formula("c2", "C2", "{C3}"),
                formula("c3", "C3", "1"),
            ],
        )
        snap.add_record(RecordSnapshot(id="r1", database_id="loop", values={}))
        return snap

    def test_mutual_reference_raises(self, loop_snapshot):
        with pytest.raises(CircularDependencyError) as exc_info:
            ComputedValueResolver(loop_snapshot).resolve("r1", "a")
        assert exc_info.value.details["chain"] == ["A", "B", "A"]

    def test_depth_limit(self, loop_snapshot):
        with pytest.raises(FormulaLimitError):
            ComputedValueResolver(loop_snapshot, max_depth=2).resolve("r1", "c1")

    def test_chain_within_depth_limit(self, loop_snapshot):
        assert ComputedValueResolver(loop_snapshot, max_depth=3).resolve("r1", "c1") == 1
