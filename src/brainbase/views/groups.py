"""Record grouping for board-style views."""

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from brainbase.core.exceptions import ValidationError
from brainbase.models.view import GroupOrder
from brainbase.views.filters import is_empty
from brainbase.views.sorts import sort_key

T = TypeVar("T")


@dataclass
class GroupConfig:
    """
    Grouping settings.

    ``group_order`` lists group keys in a user-chosen order; when present
    it decides the order of those groups regardless of ``sort_groups``.
    """

    property_id: str
    hide_empty: bool = False
    sort_groups: GroupOrder = GroupOrder.ASC
    group_order: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "property_id": self.property_id,
            "hide_empty": self.hide_empty,
            "sort_groups": self.sort_groups.value,
            "group_order": list(self.group_order),
        }


@dataclass
class RecordGroup(Generic[T]):
    key: Any
    records: list[T] = field(default_factory=list)
    is_ungrouped: bool = False


def parse_group(raw: Mapping[str, Any] | None) -> GroupConfig | None:
    if not raw:
        return None
    if not raw.get("property_id"):
        raise ValidationError(
            "Grouping requires property_id",
            errors=[{"field": "group.property_id", "message": "required"}],
        )
    try:
        sort_groups = GroupOrder(str(raw.get("sort_groups", "asc")).lower())
    except ValueError:
        raise ValidationError(
            f"Invalid group order '{raw.get('sort_groups')}'",
            errors=[{"field": "group.sort_groups", "message": "must be asc, desc or manual"}],
        )
    group_order = raw.get("group_order") or []
    if not isinstance(group_order, list):
        raise ValidationError(
            "group_order must be a list",
            errors=[{"field": "group.group_order", "message": "not a list"}],
        )
    return GroupConfig(
        property_id=str(raw["property_id"]),
        hide_empty=bool(raw.get("hide_empty", False)),
        sort_groups=sort_groups,
        group_order=list(group_order),
    )


def _group_id(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def apply_group(
    records: Sequence[T],
    config: GroupConfig,
    values: Callable[[T], Mapping[str, Any]],
) -> list[RecordGroup[T]]:
    """
    Partition records by the grouped property's value.

    Multi-valued properties place a record in one group per value. Records
    with no value form an ungrouped bucket, listed last, unless
    ``hide_empty`` is set. Records keep their input order inside a group.
    """
    groups: dict[str, RecordGroup[T]] = {}
    ungrouped: RecordGroup[T] = RecordGroup(key=None, is_ungrouped=True)

    for record in records:
        value = values(record).get(config.property_id)
        if is_empty(value):
            ungrouped.records.append(record)
            continue
        keys = value if isinstance(value, (list, tuple)) else [value]
        placed: set[str] = set()
        for key in keys:
            if is_empty(key):
                continue
            gid = _group_id(key)
            if gid in placed:
                continue
            placed.add(gid)
            groups.setdefault(gid, RecordGroup(key=key)).records.append(record)

    ordered = _order_groups(list(groups.values()), config)
    if ungrouped.records and not config.hide_empty:
        ordered.append(ungrouped)
    return ordered


def _order_groups(groups: list[RecordGroup[T]], config: GroupConfig) -> list[RecordGroup[T]]:
    manual = {_group_id(key): index for index, key in enumerate(config.group_order)}
    pinned = sorted(
        (g for g in groups if _group_id(g.key) in manual),
        key=lambda g: manual[_group_id(g.key)],
    )
    rest = [g for g in groups if _group_id(g.key) not in manual]

    if config.sort_groups != GroupOrder.MANUAL:
        rest.sort(key=lambda g: sort_key(g.key), reverse=config.sort_groups == GroupOrder.DESC)
    return pinned + rest
