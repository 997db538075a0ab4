"""Rollup property type handler.

Rollups aggregate one property of the records linked through a relation
property. They are computed on read and never stored on the record.
"""

import json
import statistics
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from brainbase.core.exceptions import EvaluationWarning, TypeCoercionWarning, TypeMismatchError
from brainbase.models.property import (
    NUMERIC_PROPERTY_TYPES,
    ErrorHandling,
    PropertyType,
    RollupFunction,
)
from brainbase.properties.base import ALL_OPERATORS, BasePropertyHandler
from brainbase.properties.types.date import parse_date_value

NUMERIC_FUNCTIONS = frozenset(
    {
        RollupFunction.SUM,
        RollupFunction.AVERAGE,
        RollupFunction.MEDIAN,
        RollupFunction.MIN,
        RollupFunction.MAX,
        RollupFunction.RANGE,
    }
)

DATE_FUNCTIONS = frozenset(
    {RollupFunction.EARLIEST, RollupFunction.LATEST, RollupFunction.DATE_RANGE}
)

# Functions that only count related records and need no target property
RECORD_FUNCTIONS = frozenset({RollupFunction.COUNT})

# Target types whose values are only known after evaluation
DYNAMIC_TARGET_TYPES = frozenset({PropertyType.FORMULA.value, PropertyType.ROLLUP.value})

NUMERIC_TARGET_TYPES = frozenset(t.value for t in NUMERIC_PROPERTY_TYPES)

DATE_TARGET_TYPES = frozenset(
    {
        PropertyType.DATE.value,
        PropertyType.CREATED_TIME.value,
        PropertyType.LAST_EDITED_TIME.value,
    }
)


@dataclass
class RollupResult:
    """Computed rollup value plus any non-fatal warnings."""

    value: Any
    warnings: list[EvaluationWarning] = field(default_factory=list)


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _flatten(values: list[Any]) -> list[Any]:
    result: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            result.extend(v for v in value if not is_empty(v))
        elif not is_empty(value):
            result.append(value)
    return result


def _unique(values: list[Any]) -> list[Any]:
    seen: set[str] = set()
    result: list[Any] = []
    for value in values:
        key = json.dumps(value, sort_keys=True, default=str)
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _tidy(value: float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _percent(part: int, whole: int) -> float:
    if whole == 0:
        return 0
    return _tidy(round(part / whole * 100, 2))


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


class RollupPropertyHandler(BasePropertyHandler):
    """
    Handler for rollup properties.

    Config:
        - relation_property_id: relation on the same database (required)
        - target_property_id: property read from each linked record
          (required except for ``count``)
        - rollup_function: one of ``RollupFunction`` (required)
        - error_handling: throw, return_null or return_default applied when
          a numeric function meets a non-numeric target (default: throw)
        - default_value: result under return_default
    """

    property_type = PropertyType.ROLLUP
    filter_operators = ALL_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (list, tuple)):
            return [cls.serialize(v) for v in value]
        return value

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        raise ValueError("Rollup properties are computed and cannot be set")

    @classmethod
    def is_computed(cls) -> bool:
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        if not config.get("relation_property_id"):
            raise ValueError("Rollup property requires relation_property_id")
        if not config.get("rollup_function"):
            raise ValueError("Rollup property requires rollup_function")

        try:
            function = RollupFunction(str(config["rollup_function"]).lower())
        except ValueError:
            supported = ", ".join(f.value for f in RollupFunction)
            raise ValueError(
                f"Invalid rollup_function '{config['rollup_function']}'. Supported: {supported}"
            )
        config["rollup_function"] = function.value

        if function not in RECORD_FUNCTIONS and not config.get("target_property_id"):
            raise ValueError(f"Rollup function '{function.value}' requires target_property_id")
        config.setdefault("target_property_id", None)

        try:
            config["error_handling"] = ErrorHandling(
                config.get("error_handling", ErrorHandling.THROW)
            ).value
        except ValueError:
            raise ValueError(f"Invalid error_handling '{config.get('error_handling')}'")
        config.setdefault("default_value", None)
        return config

    @classmethod
    def check_target_type(cls, config: dict[str, Any], target_type: str) -> None:
        """
        Reject numeric aggregations over a target that can never hold numbers.

        Formula and rollup targets are only known after evaluation and are
        left to ``error_handling``.
        """
        function = RollupFunction(config["rollup_function"])
        if function not in NUMERIC_FUNCTIONS:
            return
        if target_type in NUMERIC_TARGET_TYPES | DYNAMIC_TARGET_TYPES:
            return
        if function in (RollupFunction.MIN, RollupFunction.MAX) and target_type in DATE_TARGET_TYPES:
            return
        raise ValueError(
            f"Rollup function '{function.value}' requires a numeric target property, "
            f"got '{target_type}'"
        )

    @classmethod
    def result_data_type(cls, config: dict[str, Any], target_data_type: str = "any") -> str:
        """Data type of the rollup's value, used by formula type inference."""
        function = RollupFunction(config["rollup_function"])
        if function in (RollupFunction.SHOW_ORIGINAL, RollupFunction.SHOW_UNIQUE):
            return "array"
        if function in (RollupFunction.EARLIEST, RollupFunction.LATEST):
            return "date"
        if function in (RollupFunction.MIN, RollupFunction.MAX) and target_data_type == "date":
            return "date"
        return "number"

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    @classmethod
    def compute(
        cls,
        values: list[Any],
        function: RollupFunction | str,
        target_type: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> RollupResult:
        """
        Aggregate the target values of the linked records.

        Args:
            values: One value per linked record (None when unset)
            function: Aggregation to apply
            target_type: Property type of the aggregated property
            config: Rollup config; supplies error_handling and default_value

        Raises:
            TypeMismatchError: Numeric function over a non-numeric target
                under the ``throw`` policy
        """
        function = RollupFunction(function)
        config = config or {}
        total = len(values)
        present = [v for v in values if not is_empty(v)]

        if function == RollupFunction.COUNT:
            return RollupResult(total)
        if function == RollupFunction.COUNT_VALUES:
            return RollupResult(len(_flatten(values)))
        if function == RollupFunction.COUNT_UNIQUE:
            return RollupResult(len(_unique(_flatten(values))))
        if function == RollupFunction.COUNT_EMPTY:
            return RollupResult(total - len(present))
        if function == RollupFunction.COUNT_NOT_EMPTY:
            return RollupResult(len(present))
        if function == RollupFunction.PERCENT_EMPTY:
            return RollupResult(_percent(total - len(present), total))
        if function == RollupFunction.PERCENT_NOT_EMPTY:
            return RollupResult(_percent(len(present), total))
        if function == RollupFunction.SHOW_ORIGINAL:
            return RollupResult(_flatten(values))
        if function == RollupFunction.SHOW_UNIQUE:
            return RollupResult(_unique(_flatten(values)))

        if function in (
            RollupFunction.CHECKED,
            RollupFunction.UNCHECKED,
            RollupFunction.PERCENT_CHECKED,
        ):
            checked = sum(1 for v in values if v is True)
            if function == RollupFunction.CHECKED:
                return RollupResult(checked)
            if function == RollupFunction.UNCHECKED:
                return RollupResult(total - checked)
            return RollupResult(_percent(checked, total))

        if function in DATE_FUNCTIONS:
            return cls._compute_dates(present, function)

        return cls._compute_numeric(present, function, target_type, config)

    @classmethod
    def _compute_numeric(
        cls,
        present: list[Any],
        function: RollupFunction,
        target_type: str | None,
        config: dict[str, Any],
    ) -> RollupResult:
        if target_type and target_type not in NUMERIC_TARGET_TYPES | DYNAMIC_TARGET_TYPES:
            # Min/max over dates stay meaningful
            if function in (RollupFunction.MIN, RollupFunction.MAX) and target_type in DATE_TARGET_TYPES:
                return cls._compute_dates(
                    present,
                    RollupFunction.EARLIEST if function == RollupFunction.MIN else RollupFunction.LATEST,
                )
            return cls._non_numeric(function, target_type, config)

        numbers: list[float] = []
        skipped = 0
        for value in _flatten(present):
            if isinstance(value, bool):
                skipped += 1
            elif isinstance(value, (int, float)):
                numbers.append(value)
            else:
                try:
                    numbers.append(float(value))
                except (ValueError, TypeError):
                    skipped += 1

        if skipped and not numbers:
            return cls._non_numeric(function, target_type, config)

        warnings: list[EvaluationWarning] = []
        if skipped:
            warnings.append(
                TypeCoercionWarning(
                    f"{skipped} non-numeric value(s) ignored by {function.value}",
                    skipped=skipped,
                )
            )

        if function == RollupFunction.SUM:
            return RollupResult(_tidy(sum(numbers)), warnings)
        if not numbers:
            return RollupResult(None, warnings)
        if function == RollupFunction.AVERAGE:
            return RollupResult(_tidy(sum(numbers) / len(numbers)), warnings)
        if function == RollupFunction.MEDIAN:
            return RollupResult(_tidy(statistics.median(numbers)), warnings)
        if function == RollupFunction.MIN:
            return RollupResult(min(numbers), warnings)
        if function == RollupFunction.MAX:
            return RollupResult(max(numbers), warnings)
        return RollupResult(_tidy(max(numbers) - min(numbers)), warnings)

    @classmethod
    def _compute_dates(cls, present: list[Any], function: RollupFunction) -> RollupResult:
        dates: list[date | datetime] = []
        skipped = 0
        for value in _flatten(present):
            try:
                parsed = parse_date_value(value)
            except (ValueError, TypeError):
                parsed = None
            if parsed is None:
                skipped += 1
            else:
                dates.append(parsed)

        warnings: list[EvaluationWarning] = []
        if skipped:
            warnings.append(
                TypeCoercionWarning(
                    f"{skipped} non-date value(s) ignored by {function.value}",
                    skipped=skipped,
                )
            )
        if not dates:
            return RollupResult(None, warnings)

        earliest = min(dates, key=_as_datetime)
        latest = max(dates, key=_as_datetime)
        if function == RollupFunction.EARLIEST:
            return RollupResult(earliest.isoformat(), warnings)
        if function == RollupFunction.LATEST:
            return RollupResult(latest.isoformat(), warnings)
        return RollupResult((_as_datetime(latest) - _as_datetime(earliest)).days, warnings)

    @classmethod
    def _non_numeric(
        cls, function: RollupFunction, target_type: str | None, config: dict[str, Any]
    ) -> RollupResult:
        policy = ErrorHandling(config.get("error_handling", ErrorHandling.THROW))
        message = f"Rollup function '{function.value}' requires a numeric target property"
        if policy == ErrorHandling.THROW:
            raise TypeMismatchError(message, expected="number", actual=target_type)

        warning = TypeCoercionWarning(message, target_type=target_type)
        if policy == ErrorHandling.RETURN_DEFAULT:
            return RollupResult(config.get("default_value"), [warning])
        return RollupResult(None, [warning])
