"""Pydantic schemas for request/response validation."""

from brainbase.schemas.database import (
    DatabaseCreate,
    DatabaseListResponse,
    DatabaseResponse,
    DatabaseUpdate,
    PropertyCreate,
    PropertyReorder,
    PropertyResponse,
    PropertyUpdate,
    ViewCreate,
    ViewResponse,
    ViewUpdate,
)
from brainbase.schemas.formula import (
    ApplyViewRequest,
    ApplyViewResponse,
    FormulaEvaluateRequest,
    FormulaResult,
    FormulaValidateRequest,
    FormulaValidationResponse,
)
from brainbase.schemas.record import (
    DeletePlanResponse,
    RecordCreate,
    RecordListResponse,
    RecordResponse,
    RecordUpdate,
    RelationEdge,
    RelationRequest,
)

__all__ = [
    "ApplyViewRequest",
    "ApplyViewResponse",
    "DatabaseCreate",
    "DatabaseListResponse",
    "DatabaseResponse",
    "DatabaseUpdate",
    "DeletePlanResponse",
    "FormulaEvaluateRequest",
    "FormulaResult",
    "FormulaValidateRequest",
    "FormulaValidationResponse",
    "PropertyCreate",
    "PropertyReorder",
    "PropertyResponse",
    "PropertyUpdate",
    "RecordCreate",
    "RecordListResponse",
    "RecordResponse",
    "RecordUpdate",
    "RelationEdge",
    "RelationRequest",
    "ViewCreate",
    "ViewResponse",
    "ViewUpdate",
]
