"""Relation property type handler.

A relation value is the list of target record ids held by the source
record. Dual-property relations mirror that list in the paired property
on each target record.
"""

from typing import Any

from brainbase.models.property import DeletePolicy, PropertyType, RelationType
from brainbase.properties.base import RELATION_OPERATORS, BasePropertyHandler


class RelationPropertyHandler(BasePropertyHandler):
    """
    Handler for relation properties.

    Config:
        - target_database_id: database the targets belong to (required)
        - target_property_id: paired property on the target database
        - relation_type: one_to_one, one_to_many, many_to_one, many_to_many
          (default: many_to_many)
        - is_symmetric: relation within one database that mirrors itself
        - on_source_delete: policy applied to targets when the source is
          deleted (default: set_null)
        - on_target_delete: policy applied to sources when a target is
          deleted (default: set_null)
        - allow_multiple: source may hold several targets (default depends
          on relation_type)
        - limit: maximum number of targets
        - create_inverse: define the paired property automatically
          (default: True)
    """

    property_type = PropertyType.RELATION
    data_type = "array"
    filter_operators = RELATION_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "" or value == []:
            return None
        items = value if isinstance(value, (list, tuple, set)) else [value]
        ids: list[str] = []
        for item in items:
            if isinstance(item, dict):
                item = item.get("id")
            if item is None or item == "":
                continue
            text = str(item)
            if text not in ids:
                ids.append(text)
        return ids or None

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        if value is None:
            return []
        return [str(v) for v in value] if isinstance(value, list) else [str(value)]

    @classmethod
    def malformed_item(cls, value: Any) -> str | None:
        """First item of a relation value that is not a record id, or None."""
        if value is None:
            return None
        items = value if isinstance(value, (list, tuple, set)) else [value]
        for item in items:
            if isinstance(item, dict):
                item = item.get("id")
            if not isinstance(item, str) or not item:
                return repr(item)
        return None

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        if value is None:
            return True
        bad = cls.malformed_item(value)
        if bad is not None:
            raise ValueError(f"Relation values must be record ids, got {bad}")

        ids = cls.serialize(value) or []
        config = config or {}
        if not config.get("allow_multiple", True) and len(ids) > 1:
            raise ValueError("Relation allows a single linked record")
        limit = config.get("limit")
        if limit is not None and len(ids) > limit:
            raise ValueError(f"Relation allows at most {limit} linked record(s)")
        return True

    @classmethod
    def default(cls) -> Any:
        return []

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        if not config.get("target_database_id"):
            raise ValueError("Relation property requires target_database_id")

        try:
            relation_type = RelationType(config.get("relation_type", RelationType.MANY_TO_MANY))
        except ValueError:
            raise ValueError(f"Invalid relation_type '{config.get('relation_type')}'")
        config["relation_type"] = relation_type.value

        for key in ("on_source_delete", "on_target_delete"):
            try:
                config[key] = DeletePolicy(config.get(key, DeletePolicy.SET_NULL)).value
            except ValueError:
                raise ValueError(f"Invalid {key} policy '{config.get(key)}'")

        config.setdefault(
            "allow_multiple",
            relation_type in (RelationType.ONE_TO_MANY, RelationType.MANY_TO_MANY),
        )
        limit = config.get("limit")
        if limit is not None and (not isinstance(limit, int) or limit < 1):
            raise ValueError("limit must be a positive integer")

        config.setdefault("is_symmetric", False)
        config.setdefault("target_property_id", None)
        config.setdefault("create_inverse", True)
        return config

    @classmethod
    def inverse_config(
        cls, config: dict[str, Any], source_database_id: str, source_property_id: str
    ) -> dict[str, Any]:
        """Config of the paired property defined on the target database."""
        return {
            "target_database_id": source_database_id,
            "target_property_id": source_property_id,
            "relation_type": RelationType(config["relation_type"]).inverse.value,
            "is_symmetric": config.get("is_symmetric", False),
            "on_source_delete": config["on_target_delete"],
            "on_target_delete": config["on_source_delete"],
            "create_inverse": False,
        }
