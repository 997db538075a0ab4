"""Date property type handler."""

from datetime import date, datetime, timezone
from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import DATE_OPERATORS, BasePropertyHandler


def parse_date_value(value: Any) -> date | datetime | None:
    """
    Parse a stored or supplied date value.

    Accepts ``date``/``datetime`` objects and ISO 8601 strings (a trailing
    ``Z`` is read as UTC). Naive datetimes are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Cannot convert {type(value).__name__} to date")

    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class DatePropertyHandler(BasePropertyHandler):
    """
    Handler for date properties.

    Stored as an ISO 8601 string: ``YYYY-MM-DD`` or, with
    ``include_time``, a full UTC timestamp.

    Config:
        - include_time: keep the time part (default: False)
        - date_format: display hint, not interpreted here
    """

    property_type = PropertyType.DATE
    data_type = "date"
    filter_operators = DATE_OPERATORS

    @classmethod
    def serialize(cls, value: Any) -> Any:
        parsed = parse_date_value(value)
        if parsed is None:
            return None
        return parsed.isoformat()

    @classmethod
    def serialize_with_config(cls, value: Any, config: dict[str, Any] | None) -> Any:
        parsed = parse_date_value(value)
        if parsed is None:
            return None
        include_time = (config or {}).get("include_time", False)
        if isinstance(parsed, datetime):
            if not include_time:
                return parsed.date().isoformat()
            return parsed.astimezone(timezone.utc).isoformat()
        if include_time:
            return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc).isoformat()
        return parsed.isoformat()

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return parse_date_value(value)

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        try:
            parse_date_value(value)
        except ValueError as e:
            raise ValueError(f"Invalid date value {value!r}: {e}")
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        include_time = config.setdefault("include_time", False)
        if not isinstance(include_time, bool):
            raise ValueError("include_time must be a boolean")
        return config
