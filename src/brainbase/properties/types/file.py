"""File property type handler.

Files are references only; storage is handled elsewhere.
"""

from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import BasePropertyHandler


class FilePropertyHandler(BasePropertyHandler):
    """
    Handler for file properties.

    Stored as a list of {"name", "url", "size", "mime_type"} objects. A bare
    string is treated as a URL.

    Config:
        - max_files: maximum number of files (optional)
    """

    property_type = PropertyType.FILE
    data_type = "array"

    @classmethod
    def _as_file(cls, item: Any) -> dict[str, Any]:
        if isinstance(item, str):
            return {"name": item.rsplit("/", 1)[-1], "url": item}
        if isinstance(item, dict) and item.get("url"):
            return {
                "name": item.get("name") or str(item["url"]).rsplit("/", 1)[-1],
                "url": item["url"],
                **{k: item[k] for k in ("size", "mime_type") if k in item},
            }
        raise ValueError(f"Invalid file reference: {item!r}")

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == []:
            return None
        items = value if isinstance(value, list) else [value]
        return [cls._as_file(item) for item in items]

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return list(value or [])

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        files = cls.serialize(value) or []
        max_files = (config or {}).get("max_files")
        if max_files is not None and len(files) > max_files:
            raise ValueError(f"At most {max_files} file(s) allowed")
        return True
