"""Property type handlers for BrainBase.

Each handler implements serialization, deserialization, value validation
and config validation for one property type.
"""

from brainbase.properties.base import BasePropertyHandler
from brainbase.properties.types.checkbox import CheckboxPropertyHandler
from brainbase.properties.types.date import DatePropertyHandler
from brainbase.properties.types.file import FilePropertyHandler
from brainbase.properties.types.formula import FormulaPropertyHandler
from brainbase.properties.types.number import (
    CurrencyPropertyHandler,
    NumberPropertyHandler,
    PercentPropertyHandler,
)
from brainbase.properties.types.relation import RelationPropertyHandler
from brainbase.properties.types.rollup import RollupPropertyHandler, RollupResult
from brainbase.properties.types.select import (
    MultiSelectPropertyHandler,
    SelectPropertyHandler,
    StatusPropertyHandler,
)
from brainbase.properties.types.system import (
    CreatedByPropertyHandler,
    CreatedTimePropertyHandler,
    LastEditedByPropertyHandler,
    LastEditedTimePropertyHandler,
    SystemPropertyHandler,
)
from brainbase.properties.types.text import (
    EmailPropertyHandler,
    PhonePropertyHandler,
    RichTextPropertyHandler,
    TextPropertyHandler,
    URLPropertyHandler,
)

# Registry of property type handlers
PROPERTY_HANDLERS: dict[str, type[BasePropertyHandler]] = {
    # Basic types
    TextPropertyHandler.property_type.value: TextPropertyHandler,
    RichTextPropertyHandler.property_type.value: RichTextPropertyHandler,
    NumberPropertyHandler.property_type.value: NumberPropertyHandler,
    CurrencyPropertyHandler.property_type.value: CurrencyPropertyHandler,
    PercentPropertyHandler.property_type.value: PercentPropertyHandler,
    CheckboxPropertyHandler.property_type.value: CheckboxPropertyHandler,
    DatePropertyHandler.property_type.value: DatePropertyHandler,
    # Contact types
    URLPropertyHandler.property_type.value: URLPropertyHandler,
    EmailPropertyHandler.property_type.value: EmailPropertyHandler,
    PhonePropertyHandler.property_type.value: PhonePropertyHandler,
    # Selection types
    SelectPropertyHandler.property_type.value: SelectPropertyHandler,
    MultiSelectPropertyHandler.property_type.value: MultiSelectPropertyHandler,
    StatusPropertyHandler.property_type.value: StatusPropertyHandler,
    # Media
    FilePropertyHandler.property_type.value: FilePropertyHandler,
    # Reference and computed types
    RelationPropertyHandler.property_type.value: RelationPropertyHandler,
    RollupPropertyHandler.property_type.value: RollupPropertyHandler,
    FormulaPropertyHandler.property_type.value: FormulaPropertyHandler,
    # System types
    CreatedTimePropertyHandler.property_type.value: CreatedTimePropertyHandler,
    LastEditedTimePropertyHandler.property_type.value: LastEditedTimePropertyHandler,
    CreatedByPropertyHandler.property_type.value: CreatedByPropertyHandler,
    LastEditedByPropertyHandler.property_type.value: LastEditedByPropertyHandler,
}


def get_property_handler(property_type: str) -> type[BasePropertyHandler] | None:
    """
    Get the handler for a property type.

    Returns:
        Handler class or None if the type is unknown
    """
    return PROPERTY_HANDLERS.get(str(getattr(property_type, "value", property_type)))


def register_property_handler(handler: type[BasePropertyHandler]) -> None:
    """Register (or replace) a property handler."""
    PROPERTY_HANDLERS[handler.property_type.value] = handler


def list_property_types() -> list[str]:
    return list(PROPERTY_HANDLERS.keys())


__all__ = [
    "BasePropertyHandler",
    "PROPERTY_HANDLERS",
    "get_property_handler",
    "register_property_handler",
    "list_property_types",
    "RollupResult",
    "TextPropertyHandler",
    "RichTextPropertyHandler",
    "NumberPropertyHandler",
    "CurrencyPropertyHandler",
    "PercentPropertyHandler",
    "CheckboxPropertyHandler",
    "DatePropertyHandler",
    "URLPropertyHandler",
    "EmailPropertyHandler",
    "PhonePropertyHandler",
    "SelectPropertyHandler",
    "MultiSelectPropertyHandler",
    "StatusPropertyHandler",
    "FilePropertyHandler",
    "RelationPropertyHandler",
    "RollupPropertyHandler",
    "FormulaPropertyHandler",
    "SystemPropertyHandler",
    "CreatedTimePropertyHandler",
    "LastEditedTimePropertyHandler",
    "CreatedByPropertyHandler",
    "LastEditedByPropertyHandler",
]
