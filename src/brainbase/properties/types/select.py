"""Select, multi-select and status property handlers."""

from typing import Any
from uuid import uuid4

from brainbase.models.property import PropertyType
from brainbase.properties.base import (
    MULTI_SELECT_OPERATORS,
    SELECT_OPERATORS,
    BasePropertyHandler,
)


class SelectPropertyHandler(BasePropertyHandler):
    """
    Handler for single select properties.

    Values are stored as the option name. Callers may pass either an
    option id or a name.

    Config:
        - options: list of {id, name, color}; ids must be unique
        - allow_new: accept values that are not an option (default: False)
    """

    property_type = PropertyType.SELECT
    data_type = "text"
    filter_operators = SELECT_OPERATORS

    # Default colors for options without one
    DEFAULT_COLORS = [
        "blue",
        "cyan",
        "teal",
        "green",
        "yellow",
        "orange",
        "red",
        "pink",
        "purple",
        "gray",
    ]

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def serialize_with_config(cls, value: Any, config: dict[str, Any] | None) -> Any:
        value = cls.serialize(value)
        return None if value is None else cls.resolve_option(value, config)

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @classmethod
    def resolve_option(cls, value: str, config: dict[str, Any] | None) -> str:
        """Map an option id to its name; names and unknown values pass through."""
        for option in (config or {}).get("options", []):
            if option.get("id") == value:
                return option["name"]
        return value

    @classmethod
    def _check_option(cls, value: Any, config: dict[str, Any] | None) -> None:
        if not isinstance(value, str):
            raise ValueError(f"Select value must be a string, got {type(value).__name__}")
        config = config or {}
        if config.get("allow_new", False):
            return
        options = config.get("options", [])
        valid = {o.get("name") for o in options} | {o.get("id") for o in options}
        if value not in valid:
            names = ", ".join(sorted(o.get("name", "") for o in options))
            raise ValueError(f"Invalid option '{value}'. Valid options: {names}")

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        cls._check_option(value, config)
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        options = config.get("options")
        if options is None:
            raise ValueError(f"{cls.property_type.value} property requires an options list")
        if not isinstance(options, list):
            raise ValueError("options must be a list")

        normalized: list[dict[str, Any]] = []
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        for index, option in enumerate(options):
            if isinstance(option, str):
                option = {"name": option}
            if not isinstance(option, dict) or not str(option.get("name", "")).strip():
                raise ValueError(f"Option {index} must have a name")
            option_id = str(option.get("id") or uuid4())
            name = str(option["name"]).strip()
            if option_id in seen_ids:
                raise ValueError(f"Duplicate option id '{option_id}'")
            if name in seen_names:
                raise ValueError(f"Duplicate option name '{name}'")
            seen_ids.add(option_id)
            seen_names.add(name)
            normalized.append(
                {
                    "id": option_id,
                    "name": name,
                    "color": option.get("color")
                    or cls.DEFAULT_COLORS[index % len(cls.DEFAULT_COLORS)],
                }
            )

        config["options"] = normalized
        config.setdefault("allow_new", False)
        return config


class StatusPropertyHandler(SelectPropertyHandler):
    """Single select used as a workflow status."""

    property_type = PropertyType.STATUS


class MultiSelectPropertyHandler(SelectPropertyHandler):
    """
    Handler for multi select properties.

    Stored as a list of option names with duplicates removed, keeping the
    order they were given in.
    """

    property_type = PropertyType.MULTI_SELECT
    data_type = "array"
    filter_operators = MULTI_SELECT_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "" or value == []:
            return None
        items = value if isinstance(value, (list, tuple, set)) else [value]
        result: list[str] = []
        for item in items:
            text = str(item)
            if text not in result:
                result.append(text)
        return result

    @classmethod
    def serialize_with_config(cls, value: Any, config: dict[str, Any] | None) -> Any:
        items = cls.serialize(value)
        if items is None:
            return None
        result: list[str] = []
        for item in items:
            name = cls.resolve_option(item, config)
            if name not in result:
                result.append(name)
        return result

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        if value is None:
            return []
        return list(value) if isinstance(value, list) else [value]

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        items = value if isinstance(value, (list, tuple, set)) else [value]
        for item in items:
            cls._check_option(item, config)
        return True
