"""
Resolution of computed property values over an in-memory snapshot.

Services load the records and schemas an evaluation needs, then hand a
snapshot to ``ComputedValueResolver``. Resolution itself performs no I/O,
so it can run for many records concurrently and always gives the same
result for the same snapshot.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from brainbase.core.config import settings
from brainbase.core.exceptions import (
    CircularDependencyError,
    ComputationWarning,
    EvaluationWarning,
    FormulaError,
    FormulaLimitError,
    FormulaRuntimeError,
    PrecisionLossWarning,
    TypeMismatchError,
)
from brainbase.core.logging import get_logger
from brainbase.formula.dependencies import resolve_reference
from brainbase.formula.evaluator import FormulaEvaluator
from brainbase.formula.parser import parse_formula
from brainbase.models.property import ErrorHandling, PropertyType
from brainbase.properties import RollupPropertyHandler, get_property_handler
from brainbase.properties.types.system import SystemPropertyHandler

if TYPE_CHECKING:
    from brainbase.models.record import Record

logger = get_logger(__name__)


def to_json_value(value: Any) -> Any:
    """Convert an evaluation result to a JSON-compatible value."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    return value


def infer_data_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, (list, tuple, set)):
        return "array"
    if isinstance(value, str):
        return "text"
    return "any"


@dataclass
class RecordSnapshot:
    """Immutable view of a record used during evaluation."""

    id: str
    database_id: str
    values: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by_id: str | None = None
    last_edited_by_id: str | None = None

    @classmethod
    def from_record(cls, record: "Record") -> "RecordSnapshot":
        return cls(
            id=record.id,
            database_id=record.database_id,
            values=record.get_all_values(),
            created_at=record.created_at,
            updated_at=record.updated_at,
            created_by_id=record.created_by_id,
            last_edited_by_id=record.last_edited_by_id,
        )


@dataclass
class EvaluationSnapshot:
    """Schemas and records visible to one resolution pass."""

    schemas: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    records: dict[str, RecordSnapshot] = field(default_factory=dict)

    def add_schema(self, database_id: str, properties: list[dict[str, Any]]) -> None:
        self.schemas[database_id] = list(properties)

    def add_record(self, record: RecordSnapshot) -> None:
        self.records[record.id] = record

    def get_property(self, database_id: str, property_id: str) -> dict[str, Any] | None:
        for prop in self.schemas.get(database_id, []):
            if prop["id"] == property_id:
                return prop
        return None


class ComputedValueResolver:
    """
    Resolves property values of records in a snapshot, evaluating rollups
    and formulas on demand.

    The resolver keeps a stack of (record, property) pairs being evaluated;
    re-entering a pair raises ``CircularDependencyError`` and a stack
    deeper than ``max_depth`` raises ``FormulaLimitError``. Results are
    memoized for the lifetime of the resolver.
    """

    def __init__(
        self,
        snapshot: EvaluationSnapshot,
        *,
        max_depth: int | None = None,
        max_steps: int | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.max_depth = max_depth or settings.formula_max_depth
        self.max_steps = max_steps or settings.formula_max_steps
        self.warnings: list[EvaluationWarning] = []
        self._stack: list[tuple[str, str]] = []
        self._memo: dict[tuple[str, str], Any] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, record_id: str, property_id: str) -> Any:
        """Resolved value of one property of one record."""
        return self._value(record_id, property_id)

    def resolve_record(self, record_id: str) -> dict[str, Any]:
        """
        All schema properties of a record, computed ones included.

        A computed property that fails under its own ``throw`` policy is left
        blank with a warning so the other properties still resolve. Cycles
        and evaluation limits propagate.
        """
        record = self.snapshot.records[record_id]
        values: dict[str, Any] = {}
        for prop in self.snapshot.schemas.get(record.database_id, []):
            try:
                values[prop["id"]] = self._value(record_id, prop["id"])
            except (CircularDependencyError, FormulaLimitError):
                raise
            except (FormulaError, TypeMismatchError) as e:
                values[prop["id"]] = None
                self.warnings.append(
                    ComputationWarning(
                        f"'{prop['name']}' could not be computed: {e.message}",
                        record_id=record_id,
                        property_id=prop["id"],
                        code=e.code,
                    )
                )
        return values

    def evaluate(
        self,
        record_id: str,
        property_id: str,
        variables: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Evaluate a formula property with caller-supplied variables.

        Variables are visible to this formula's own expression only, so the
        result is not memoized.
        """
        if not variables:
            return self._value(record_id, property_id)

        record = self.snapshot.records[record_id]
        prop = self.snapshot.get_property(record.database_id, property_id)
        if prop is None or prop["type"] != PropertyType.FORMULA.value:
            return self._value(record_id, property_id)

        key = (record_id, property_id)
        self._stack.append(key)
        try:
            return self._compute_formula(record, prop, variables)
        finally:
            self._stack.pop()

    def evaluate_expression(
        self,
        record_id: str,
        expression: str,
        variables: Mapping[str, Any] | None = None,
    ) -> Any:
        """Evaluate an ad hoc expression against a record; errors propagate."""
        record = self.snapshot.records[record_id]
        evaluator = FormulaEvaluator(
            lookup=lambda ref: self._reference(record, ref, expression),
            variables=variables,
            max_steps=self.max_steps,
            formula=expression,
        )
        return to_json_value(evaluator.evaluate(parse_formula(expression)))

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _value(self, record_id: str, property_id: str) -> Any:
        key = (record_id, property_id)
        if key in self._memo:
            return self._memo[key]

        if key in self._stack:
            start = self._stack.index(key)
            chain = [self._name(r, p) for r, p in self._stack[start:]] + [
                self._name(record_id, property_id)
            ]
            raise CircularDependencyError(chain)
        if len(self._stack) >= self.max_depth:
            raise FormulaLimitError(self._name(record_id, property_id), "depth", self.max_depth)

        self._stack.append(key)
        try:
            value = self._compute(record_id, property_id)
        finally:
            self._stack.pop()

        self._memo[key] = value
        return value

    def _compute(self, record_id: str, property_id: str) -> Any:
        record = self.snapshot.records.get(record_id)
        if record is None:
            return None
        prop = self.snapshot.get_property(record.database_id, property_id)
        if prop is None:
            return None

        handler = get_property_handler(prop["type"])
        if handler is not None and issubclass(handler, SystemPropertyHandler):
            return handler.serialize(getattr(record, handler.source_attribute))
        if prop["type"] == PropertyType.ROLLUP.value:
            return self._compute_rollup(record, prop)
        if prop["type"] == PropertyType.FORMULA.value:
            return self._compute_formula(record, prop, None)
        if prop["type"] == PropertyType.RELATION.value:
            return list(record.values.get(property_id) or [])
        return record.values.get(property_id)

    def _compute_rollup(self, record: RecordSnapshot, prop: dict[str, Any]) -> Any:
        config = prop["config"]
        relation = self.snapshot.get_property(record.database_id, config["relation_property_id"])
        if relation is None:
            return None

        target_db = relation["config"]["target_database_id"]
        target_prop = None
        if config.get("target_property_id"):
            target_prop = self.snapshot.get_property(target_db, config["target_property_id"])

        values: list[Any] = []
        for target_id in record.values.get(relation["id"]) or []:
            if target_id not in self.snapshot.records:
                continue
            values.append(self._value(target_id, target_prop["id"]) if target_prop else None)

        result = RollupPropertyHandler.compute(
            values,
            config["rollup_function"],
            target_type=target_prop["type"] if target_prop else None,
            config=config,
        )
        self.warnings.extend(result.warnings)
        return to_json_value(result.value)

    def _compute_formula(
        self,
        record: RecordSnapshot,
        prop: dict[str, Any],
        variables: Mapping[str, Any] | None,
    ) -> Any:
        config = prop["config"]
        expression = config.get("expression", "")
        try:
            evaluator = FormulaEvaluator(
                lookup=lambda ref: self._reference(record, ref, expression),
                variables=variables,
                max_steps=self.max_steps,
                formula=expression,
            )
            value = to_json_value(evaluator.evaluate(parse_formula(expression)))
        except (CircularDependencyError, FormulaLimitError):
            raise
        except (FormulaError, TypeMismatchError) as e:
            return self._apply_error_policy(prop, e)

        precision = config.get("precision")
        if precision is not None and isinstance(value, float):
            rounded = round(value, precision)
            if rounded != value:
                self.warnings.append(
                    PrecisionLossWarning(
                        f"Result of '{prop['name']}' rounded to {precision} decimal place(s)",
                        property_id=prop["id"],
                        original=value,
                    )
                )
            value = int(rounded) if precision == 0 else rounded
        return value

    def _apply_error_policy(self, prop: dict[str, Any], error: Exception) -> Any:
        policy = ErrorHandling(prop["config"].get("error_handling", ErrorHandling.RETURN_NULL))
        if policy == ErrorHandling.THROW:
            raise error
        logger.debug(
            "Formula evaluation failed",
            extra={"property_id": prop["id"], "error": str(error), "policy": policy.value},
        )
        if policy == ErrorHandling.RETURN_DEFAULT:
            return prop["config"].get("default_value")
        return None

    def _reference(self, record: RecordSnapshot, ref: str, expression: str) -> Any:
        prop = resolve_reference(ref, self.snapshot.schemas.get(record.database_id, []))
        if prop is None:
            raise FormulaRuntimeError(expression, f"Unknown property: {ref}")
        return self._value(record.id, prop["id"])

    def _name(self, record_id: str, property_id: str) -> str:
        record = self.snapshot.records.get(record_id)
        if record is not None:
            prop = self.snapshot.get_property(record.database_id, property_id)
            if prop is not None:
                return prop["name"]
        return property_id
