"""Multi-key record sorting for views."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from brainbase.core.exceptions import ValidationError
from brainbase.models.view import SortDirection
from brainbase.views.filters import is_empty

T = TypeVar("T")


@dataclass
class SortSpec:
    property_id: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> dict[str, Any]:
        return {"property_id": self.property_id, "direction": self.direction.value}


def parse_sorts(raw: Sequence[Mapping[str, Any]] | None) -> list[SortSpec]:
    """
    Build sort specs from their stored form.

    Raises:
        ValidationError: Missing property id or unknown direction
    """
    specs: list[SortSpec] = []
    for index, item in enumerate(raw or []):
        if not isinstance(item, Mapping) or not item.get("property_id"):
            raise ValidationError(
                "Sort requires property_id",
                errors=[{"field": f"sorts[{index}].property_id", "message": "required"}],
            )
        try:
            direction = SortDirection(str(item.get("direction", "asc")).lower())
        except ValueError:
            raise ValidationError(
                f"Invalid sort direction '{item.get('direction')}'",
                errors=[{"field": f"sorts[{index}].direction", "message": "must be asc or desc"}],
            )
        specs.append(SortSpec(property_id=str(item["property_id"]), direction=direction))
    return specs


def sort_key(value: Any) -> tuple[int, Any]:
    """Comparable key for a non-empty value; numbers sort before text."""
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, float(value))
    if isinstance(value, (list, tuple)):
        return (1, ", ".join(str(v) for v in value).casefold())
    return (1, str(value).casefold())


def apply_sort(
    records: Sequence[T],
    sorts: Sequence[SortSpec],
    values: Callable[[T], Mapping[str, Any]],
) -> list[T]:
    """
    Stable multi-key sort.

    Empty values go last in both directions. Records equal on every key
    keep their input order.
    """
    result = list(records)
    # Least significant key first; each pass is stable
    for spec in reversed(sorts):
        present = [r for r in result if not is_empty(values(r).get(spec.property_id))]
        missing = [r for r in result if is_empty(values(r).get(spec.property_id))]
        present.sort(
            key=lambda r: sort_key(values(r).get(spec.property_id)),
            reverse=spec.direction == SortDirection.DESC,
        )
        result = present + missing
    return result
