"""Formula and view-application schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class FormulaValidateRequest(BaseModel):
    database_id: str
    expression: str
    property_id: Optional[str] = Field(
        None, description="Property being edited; enables cycle detection"
    )


class FormulaIssue(BaseModel):
    type: str
    message: str
    position: Optional[int] = None
    suggestions: list[str] = Field(default_factory=list)


class FormulaValidationResponse(BaseModel):
    is_valid: bool
    errors: list[FormulaIssue]
    warnings: list[FormulaIssue]
    dependencies: list[str]
    return_type: str
    estimated_complexity: int


class FormulaEvaluateRequest(BaseModel):
    """Evaluate a formula property, or an ad hoc expression, for one record."""

    record_id: str
    property_id: Optional[str] = None
    expression: Optional[str] = None
    variables: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_target(self) -> "FormulaEvaluateRequest":
        if not self.property_id and not self.expression:
            raise ValueError("Either property_id or expression is required")
        return self


class FormulaResult(BaseModel):
    value: Any = None
    data_type: str = "any"
    cached: bool = False
    calculated_at: Optional[datetime] = None
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class ApplyViewRequest(BaseModel):
    record_ids: Optional[list[str]] = Field(
        None, description="Restrict to these records; all active records when omitted"
    )


class ViewGroupResponse(BaseModel):
    key: Any = None
    record_ids: list[str]
    is_ungrouped: bool = False


class ViewRecordResponse(BaseModel):
    id: str
    values: dict[str, Any]


class ApplyViewResponse(BaseModel):
    view_id: str
    records: list[ViewRecordResponse]
    groups: Optional[list[ViewGroupResponse]] = None
    warnings: list[dict[str, Any]] = Field(default_factory=list)
