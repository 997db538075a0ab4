"""Database, property and view schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from brainbase.models.property import PropertyType
from brainbase.models.view import ViewType


class PropertyCreate(BaseModel):
    """Schema for defining a property."""

    name: str = Field(..., max_length=255, description="Display name, unique among visible properties")
    type: str = Field(..., description="Property type")
    config: dict[str, Any] = Field(default_factory=dict, description="Type-specific configuration")
    id: Optional[str] = Field(None, max_length=255, description="Property id (generated if omitted)")
    order: Optional[int] = Field(None, description="Display order")
    description: Optional[str] = Field(None, description="Property description")
    is_visible: bool = Field(True, description="Whether the property is shown")
    inverse_name: Optional[str] = Field(
        None, max_length=255, description="Name of the paired relation property"
    )

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        return v.value if isinstance(v, PropertyType) else v


class PropertyUpdate(BaseModel):
    """Schema for updating a property. Config keys are merged."""

    name: Optional[str] = Field(None, max_length=255)
    type: Optional[str] = Field(None, description="Rejected unless equal to the current type")
    config: Optional[dict[str, Any]] = None
    description: Optional[str] = None
    is_visible: Optional[bool] = None


class PropertyResponse(BaseModel):
    id: str
    name: str
    type: str
    config: dict[str, Any]
    order: int
    is_system: bool = False
    is_visible: bool = True
    description: Optional[str] = None


class PropertyReorder(BaseModel):
    property_ids: list[str] = Field(..., description="Property ids in their new order")


class ViewCreate(BaseModel):
    """Schema for saving a view."""

    name: str = Field(..., min_length=1, max_length=255)
    type: ViewType = Field(ViewType.TABLE)
    filters: Optional[dict[str, Any]] = Field(
        None, description="{operator: and|or, conditions: [...]}"
    )
    sorts: list[dict[str, Any]] = Field(default_factory=list)
    group: Optional[dict[str, Any]] = None
    config: dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False


class ViewUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[ViewType] = None
    filters: Optional[dict[str, Any]] = None
    sorts: Optional[list[dict[str, Any]]] = None
    group: Optional[dict[str, Any]] = None
    config: Optional[dict[str, Any]] = None
    is_default: Optional[bool] = None


class ViewResponse(BaseModel):
    id: str
    database_id: str
    name: str
    type: str
    filters: dict[str, Any]
    sorts: list[dict[str, Any]]
    group: Optional[dict[str, Any]] = None
    config: dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False
    order: int = 0


class DatabaseCreate(BaseModel):
    """Schema for creating a database."""

    name: str = Field(..., min_length=1, max_length=255, description="Database name")
    description: Optional[str] = Field(None, description="Database description")
    icon: Optional[str] = Field(None, max_length=64)
    properties: list[PropertyCreate] = Field(default_factory=list)


class DatabaseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=64)
    archived: Optional[bool] = None


class DatabaseResponse(BaseModel):
    """Schema for database response."""

    id: str
    name: str
    description: Optional[str]
    icon: Optional[str]
    owner_id: Optional[str]
    properties: list[PropertyResponse]
    views: list[ViewResponse]
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, database: Any) -> "DatabaseResponse":
        return cls(
            id=database.id,
            name=database.name,
            description=database.description,
            icon=database.icon,
            owner_id=database.owner_id,
            properties=[PropertyResponse(**p) for p in database.get_properties()],
            views=[ViewResponse(database_id=database.id, **v) for v in database.get_views()],
            archived_at=database.archived_at,
            created_at=database.created_at,
            updated_at=database.updated_at,
        )


class DatabaseListResponse(BaseModel):
    items: list[DatabaseResponse]
    total: int
    page: int
    page_size: int
