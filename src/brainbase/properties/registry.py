"""
Property definition building and validation.

These functions work on a database's list of property dicts and never
touch storage; the database service persists their results.
"""

from typing import Any
from uuid import uuid4

from brainbase.core.exceptions import FormulaSyntaxError, PropertyNotFoundError, ValidationError
from brainbase.formula.dependencies import (
    FormulaDependencyGraph,
    expression_dependencies,
    property_dependencies,
)
from brainbase.models.property import SYSTEM_PROPERTY_TYPES, PropertyType
from brainbase.properties import get_property_handler, list_property_types

EDITABLE_KEYS = frozenset({"name", "config", "description", "is_visible"})


def _error(field: str, message: str) -> ValidationError:
    return ValidationError(message, errors=[{"field": field, "message": message}])


def _check_name(name: Any, existing: list[dict[str, Any]], exclude_id: str | None = None) -> str:
    if not isinstance(name, str) or not name.strip():
        raise _error("name", "Property name must not be empty")
    name = name.strip()
    lowered = name.lower()
    for prop in existing:
        if prop["id"] == exclude_id or not prop.get("is_visible", True):
            continue
        if prop["name"].strip().lower() == lowered:
            raise _error("name", f"A property named '{name}' already exists")
    return name


def _validate_config(prop_type: str, config: dict[str, Any]) -> dict[str, Any]:
    handler = get_property_handler(prop_type)
    if handler is None:
        raise _error("type", f"Unknown property type '{prop_type}'")
    try:
        return handler.validate_config(config or {})
    except ValueError as e:
        raise _error("config", str(e))


def _check_computed(prop: dict[str, Any], others: list[dict[str, Any]]) -> None:
    """Resolve formula dependencies and reject rollups or formulas that cannot work."""
    config = prop["config"]
    schema = others + [prop]

    if prop["type"] == PropertyType.ROLLUP.value:
        relation = next((p for p in others if p["id"] == config["relation_property_id"]), None)
        if relation is None or relation["type"] != PropertyType.RELATION.value:
            raise _error(
                "config.relation_property_id",
                f"'{config['relation_property_id']}' is not a relation property of this database",
            )

    if prop["type"] == PropertyType.FORMULA.value:
        try:
            ids, unknown = expression_dependencies(config["expression"], schema)
        except FormulaSyntaxError as e:
            raise _error("config.expression", e.message)
        if unknown:
            raise _error(
                "config.expression",
                "Unknown property reference(s): " + ", ".join(sorted(set(unknown))),
            )
        config["dependencies"] = ids

    graph = FormulaDependencyGraph.from_properties(schema)
    chain = graph.find_cycle(prop["id"], property_dependencies(prop, schema))
    if chain:
        names = {p["id"]: p["name"] for p in schema}
        raise _error(
            "config.expression",
            "Circular reference: " + " -> ".join(names.get(pid, pid) for pid in chain),
        )


def build_property(spec: dict[str, Any], existing: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Build a validated property definition.

    Args:
        spec: {"name", "type", "config", "id"?, "order"?, "description"?,
            "is_visible"?}
        existing: Current properties of the database

    Raises:
        ValidationError: Unknown type, empty or duplicate name, duplicate id,
            bad config, or a dependency cycle
    """
    prop_type = str(getattr(spec.get("type"), "value", spec.get("type") or ""))
    if prop_type not in list_property_types():
        raise _error("type", f"Unknown property type '{prop_type}'")

    name = _check_name(spec.get("name"), existing)

    prop_id = spec.get("id") or str(uuid4())
    if any(p["id"] == prop_id for p in existing):
        raise _error("id", f"Property id '{prop_id}' already exists")

    order = spec.get("order")
    if order is None:
        order = max((p.get("order", 0) for p in existing), default=-1) + 1

    prop = {
        "id": prop_id,
        "name": name,
        "type": prop_type,
        "config": _validate_config(prop_type, spec.get("config") or {}),
        "order": order,
        "is_system": PropertyType(prop_type) in SYSTEM_PROPERTY_TYPES,
        "is_visible": spec.get("is_visible", True),
        "description": spec.get("description"),
    }
    _check_computed(prop, existing)
    return prop


def update_property_definition(
    prop: dict[str, Any], patch: dict[str, Any], existing: list[dict[str, Any]]
) -> dict[str, Any]:
    """
    Apply a patch to a property definition.

    Config patches are merged into the current config and re-validated.
    The property type cannot change.
    """
    if "type" in patch and patch["type"] not in (None, prop["type"]):
        raise _error("type", "Property type cannot be changed")
    unknown = set(patch) - EDITABLE_KEYS - {"type"}
    if unknown:
        raise _error(sorted(unknown)[0], f"Cannot update {', '.join(sorted(unknown))}")

    others = [p for p in existing if p["id"] != prop["id"]]
    updated = dict(prop)
    if patch.get("name") is not None:
        updated["name"] = _check_name(patch["name"], others)
    if "description" in patch:
        updated["description"] = patch["description"]
    if patch.get("is_visible") is not None:
        updated["is_visible"] = bool(patch["is_visible"])
    if patch.get("config") is not None:
        merged = {**prop.get("config", {}), **patch["config"]}
        updated["config"] = _validate_config(prop["type"], merged)
        _check_computed(updated, others)
    return updated


def reorder(properties: list[dict[str, Any]], ordered_ids: list[str]) -> list[dict[str, Any]]:
    """
    Reassign ``order``: listed ids first in the given order, then the rest
    keeping their relative order.

    Raises:
        PropertyNotFoundError: An id does not belong to the database
    """
    by_id = {p["id"]: p for p in properties}
    for pid in ordered_ids:
        if pid not in by_id:
            raise PropertyNotFoundError(pid)

    listed = list(dict.fromkeys(ordered_ids))
    current = sorted(properties, key=lambda p: p.get("order", 0))
    sequence = [by_id[pid] for pid in listed] + [p for p in current if p["id"] not in listed]
    return [{**prop, "order": index} for index, prop in enumerate(sequence)]
