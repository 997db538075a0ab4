"""Text-like property handlers: text, rich text, url, email, phone."""

import re
from typing import Any

from brainbase.models.property import PropertyType
from brainbase.properties.base import TEXT_OPERATORS, BasePropertyHandler


class TextPropertyHandler(BasePropertyHandler):
    """
    Handler for plain text properties.

    Config:
        - max_length: maximum length (default: 2000)
        - min_length: minimum length (default: 0)
        - regex: pattern the value must match
    """

    property_type = PropertyType.TEXT
    data_type = "text"
    filter_operators = TEXT_OPERATORS

    DEFAULT_MAX_LENGTH = 2000

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        if value is None:
            return True
        if not isinstance(value, str):
            raise ValueError(f"Text property requires string value, got {type(value).__name__}")

        config = config or {}
        max_length = config.get("max_length", cls.DEFAULT_MAX_LENGTH)
        min_length = config.get("min_length", 0)
        if len(value) > max_length:
            raise ValueError(f"Text value exceeds max length of {max_length}")
        if len(value) < min_length:
            raise ValueError(f"Text value is below min length of {min_length}")

        cls._validate_regex(value, config)
        return True

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        config = dict(config)
        for key in ("max_length", "min_length"):
            if key in config and (not isinstance(config[key], int) or config[key] < 0):
                raise ValueError(f"{key} must be a non-negative integer")
        if config.get("regex"):
            try:
                re.compile(config["regex"])
            except re.error as e:
                raise ValueError(f"Invalid regex pattern: {e}")
        return config


class RichTextPropertyHandler(TextPropertyHandler):
    """Long-form text; same rules as text with a larger limit."""

    property_type = PropertyType.RICH_TEXT

    DEFAULT_MAX_LENGTH = 100_000


class URLPropertyHandler(TextPropertyHandler):
    property_type = PropertyType.URL

    URL_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^\s]+$")

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        super().validate(value, config)
        if value and not cls.URL_PATTERN.match(value):
            raise ValueError(f"Invalid URL: {value}")
        return True


class EmailPropertyHandler(TextPropertyHandler):
    property_type = PropertyType.EMAIL

    EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value).strip().lower()

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        super().validate(value, config)
        if value and not cls.EMAIL_PATTERN.match(value.strip()):
            raise ValueError(f"Invalid email address: {value}")
        return True


class PhonePropertyHandler(TextPropertyHandler):
    property_type = PropertyType.PHONE

    PHONE_PATTERN = re.compile(r"^\+?[0-9 ()./-]{3,32}$")

    @classmethod
    def validate(cls, value: Any, config: dict[str, Any] | None = None) -> bool:
        super().validate(value, config)
        if value and not cls.PHONE_PATTERN.match(value.strip()):
            raise ValueError(f"Invalid phone number: {value}")
        return True
