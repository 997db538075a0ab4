"""
View engine: filter, then sort, then group.

The engine is a pure function pipeline over records whose values have
already been resolved (computed properties included). It performs no
I/O and holds no record data between calls.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from brainbase.core.exceptions import ValidationError
from brainbase.models.view import ViewType
from brainbase.properties import get_property_handler
from brainbase.views.filters import FilterGroup, matches, parse_filter_tree
from brainbase.views.groups import GroupConfig, RecordGroup, apply_group, parse_group
from brainbase.views.sorts import SortSpec, apply_sort, parse_sorts


@dataclass
class ViewRecord:
    """A record as seen by the view engine."""

    id: str
    values: Mapping[str, Any]


def _values(record: ViewRecord) -> Mapping[str, Any]:
    return record.values


@dataclass
class ViewDefinition:
    filters: FilterGroup = field(default_factory=FilterGroup)
    sorts: list[SortSpec] = field(default_factory=list)
    group: GroupConfig | None = None

    @classmethod
    def from_dict(cls, view: Mapping[str, Any]) -> "ViewDefinition":
        return cls(
            filters=parse_filter_tree(view.get("filters")),
            sorts=parse_sorts(view.get("sorts")),
            group=parse_group(view.get("group")),
        )


@dataclass
class ViewResult:
    records: list[ViewRecord]
    groups: list[RecordGroup[ViewRecord]] | None = None


def apply_filters(
    records: Sequence[ViewRecord], tree: FilterGroup, today: date | None = None
) -> list[ViewRecord]:
    """Records matching the filter tree, in their input order."""
    return [r for r in records if matches(tree, r.values, today)]


def apply_sorts(records: Sequence[ViewRecord], sorts: Sequence[SortSpec]) -> list[ViewRecord]:
    return apply_sort(records, sorts, _values)


def apply_grouping(
    records: Sequence[ViewRecord], group: GroupConfig
) -> list[RecordGroup[ViewRecord]]:
    return apply_group(records, group, _values)


def run_view(
    definition: ViewDefinition, records: Sequence[ViewRecord], today: date | None = None
) -> ViewResult:
    """Run the filter, sort and group pipeline."""
    filtered = apply_filters(records, definition.filters, today)
    ordered = apply_sorts(filtered, definition.sorts)
    groups = apply_grouping(ordered, definition.group) if definition.group else None
    return ViewResult(records=ordered, groups=groups)


def validate_view(view: Mapping[str, Any], properties: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Check a view definition against the database schema.

    Returns:
        The view with normalized filters, sorts and group

    Raises:
        ValidationError: Unknown view type or property, or an operator the
            property type does not support
    """
    name = view.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(
            "View name must not be empty", errors=[{"field": "name", "message": "required"}]
        )
    try:
        view_type = ViewType(view.get("type", ViewType.TABLE))
    except ValueError:
        raise ValidationError(
            f"Unknown view type '{view.get('type')}'",
            errors=[{"field": "type", "message": "unknown view type"}],
        )

    definition = ViewDefinition.from_dict(view)
    by_id = {p["id"]: p for p in properties}
    errors: list[dict[str, Any]] = []

    for leaf in definition.filters.leaves():
        prop = by_id.get(leaf.property_id)
        if prop is None:
            errors.append({"field": "filters", "message": f"Unknown property '{leaf.property_id}'"})
            continue
        handler = get_property_handler(prop["type"])
        if handler is None or leaf.operator not in handler.filter_operators:
            errors.append(
                {
                    "field": "filters",
                    "message": (
                        f"Operator '{leaf.operator.value}' is not supported for "
                        f"{prop['type']} property '{prop['name']}'"
                    ),
                }
            )

    for spec in definition.sorts:
        if spec.property_id not in by_id:
            errors.append({"field": "sorts", "message": f"Unknown property '{spec.property_id}'"})

    if definition.group and definition.group.property_id not in by_id:
        errors.append(
            {"field": "group", "message": f"Unknown property '{definition.group.property_id}'"}
        )

    if view_type == ViewType.BOARD and definition.group is None:
        errors.append({"field": "group", "message": "Board views require a group property"})

    if errors:
        raise ValidationError(errors[0]["message"], errors=errors)

    return {
        **view,
        "name": name.strip(),
        "type": view_type.value,
        "filters": definition.filters.to_dict(),
        "sorts": [s.to_dict() for s in definition.sorts],
        "group": definition.group.to_dict() if definition.group else None,
        "config": dict(view.get("config") or {}),
    }
