"""SQLAlchemy models for BrainBase."""

from brainbase.db.base import Base
from brainbase.models.database import Database
from brainbase.models.formula_cache import FormulaCacheEntry, hash_expression
from brainbase.models.property import (
    COMPUTED_PROPERTY_TYPES,
    SYSTEM_PROPERTY_TYPES,
    DeletePolicy,
    ErrorHandling,
    PropertyType,
    RelationType,
    RollupFunction,
)
from brainbase.models.record import Record
from brainbase.models.view import FilterOperator, GroupOrder, SortDirection, ViewType

__all__ = [
    "Base",
    "Database",
    "Record",
    "FormulaCacheEntry",
    "hash_expression",
    "PropertyType",
    "RelationType",
    "DeletePolicy",
    "ErrorHandling",
    "RollupFunction",
    "SYSTEM_PROPERTY_TYPES",
    "COMPUTED_PROPERTY_TYPES",
    "ViewType",
    "FilterOperator",
    "SortDirection",
    "GroupOrder",
]
