"""Record and relation schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class RecordCreate(BaseModel):
    """Schema for creating a record."""

    database_id: str = Field(..., description="Database ID")
    properties: dict[str, Any] = Field(
        default_factory=dict,
        description="Property values as {property_id: value}",
    )


class RecordUpdate(BaseModel):
    """Schema for updating a record. Only listed properties change."""

    properties: dict[str, Any] = Field(default_factory=dict)
    expected_version: Optional[int] = Field(
        None, ge=1, description="Reject the update if the stored version differs"
    )


class RecordResponse(BaseModel):
    """Schema for record response."""

    id: str
    database_id: str
    properties: dict[str, Any]
    version: int
    created_by_id: Optional[str]
    last_edited_by_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, record: Any) -> "RecordResponse":
        return cls(
            id=record.id,
            database_id=record.database_id,
            properties=record.get_all_values(),
            version=record.version,
            created_by_id=record.created_by_id,
            last_edited_by_id=record.last_edited_by_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class RecordListResponse(BaseModel):
    items: list[RecordResponse]
    total: int
    page: int
    page_size: int


class RelationRequest(BaseModel):
    """Connect or disconnect two records through a relation property."""

    source_record_id: str
    target_record_id: str
    property_id: str


class RelationEdge(BaseModel):
    source_record_id: str
    target_record_id: str
    property_id: str
    target_property_id: Optional[str] = None
    created: bool = Field(False, description="False when the edge already existed")


class DeletePlanResponse(BaseModel):
    deleted: list[str]
    cleared: list[dict[str, Any]]
