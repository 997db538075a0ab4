"""
Database endpoints.

Handles database CRUD, property definitions and saved views.
"""

from typing import Annotated

from fastapi import APIRouter, Query, status

from brainbase.api.deps import ActorId, DatabaseServiceDep, DbSession
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

router = APIRouter()


# =============================================================================
# Database CRUD Endpoints
# =============================================================================


@router.post("", response_model=DatabaseResponse, status_code=status.HTTP_201_CREATED)
async def create_database(
    data: DatabaseCreate,
    db: DbSession,
    actor_id: ActorId,
    service: DatabaseServiceDep,
) -> DatabaseResponse:
    """
    Create a new database.

    Initial properties are defined in the order given; relations among
    them may reference databases that already exist.
    """
    database = await service.create_database(db, actor_id, data)
    return DatabaseResponse.from_model(database)


@router.get("", response_model=DatabaseListResponse)
async def list_databases(
    db: DbSession,
    service: DatabaseServiceDep,
    owner_id: Annotated[str | None, Query(description="Only databases of this owner")] = None,
    include_archived: Annotated[bool, Query(description="Include archived databases")] = False,
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    page_size: Annotated[int, Query(ge=1, le=100, description="Items per page (max 100)")] = 20,
) -> DatabaseListResponse:
    databases, total = await service.list_databases(
        db,
        owner_id=owner_id,
        include_archived=include_archived,
        page=page,
        page_size=page_size,
    )
    return DatabaseListResponse(
        items=[DatabaseResponse.from_model(d) for d in databases],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{database_id}", response_model=DatabaseResponse)
async def get_database(
    database_id: str,
    db: DbSession,
    service: DatabaseServiceDep,
) -> DatabaseResponse:
    database = await service.get_database(db, database_id)
    return DatabaseResponse.from_model(database)


@router.patch("/{database_id}", response_model=DatabaseResponse)
async def update_database(
    database_id: str,
    data: DatabaseUpdate,
    db: DbSession,
    service: DatabaseServiceDep,
) -> DatabaseResponse:
    """Rename, describe, or archive/unarchive a database."""
    database = await service.update_database(db, database_id, data)
    return DatabaseResponse.from_model(database)


@router.delete("/{database_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_database(
    database_id: str,
    db: DbSession,
    service: DatabaseServiceDep,
) -> None:
    """
    Delete a database.

    Fails with 409 while the database still holds active records.
    """
    await service.delete_database(db, database_id)


# =============================================================================
# Property Endpoints
# =============================================================================


@router.post(
    "/{database_id}/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def define_property(
    database_id: str,
    spec: PropertyCreate,
    db: DbSession,
    service: DatabaseServiceDep,
) -> PropertyResponse:
    prop = await service.define_property(db, database_id, spec)
    return PropertyResponse(**prop)


@router.patch("/{database_id}/properties/{property_id}", response_model=PropertyResponse)
async def update_property(
    database_id: str,
    property_id: str,
    patch: PropertyUpdate,
    db: DbSession,
    service: DatabaseServiceDep,
) -> PropertyResponse:
    """Rename or reconfigure a property. The type cannot change."""
    prop = await service.update_property(db, database_id, property_id, patch)
    return PropertyResponse(**prop)


@router.post("/{database_id}/properties/reorder", response_model=list[PropertyResponse])
async def reorder_properties(
    database_id: str,
    data: PropertyReorder,
    db: DbSession,
    service: DatabaseServiceDep,
) -> list[PropertyResponse]:
    properties = await service.reorder_properties(db, database_id, data.property_ids)
    return [PropertyResponse(**p) for p in properties]


# =============================================================================
# View Endpoints
# =============================================================================


@router.post(
    "/{database_id}/views",
    response_model=ViewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_view(
    database_id: str,
    data: ViewCreate,
    db: DbSession,
    service: DatabaseServiceDep,
) -> ViewResponse:
    """
    Save a view.

    Filters are checked against the schema: unknown properties and
    operators the property type does not support are rejected.
    """
    view = await service.create_view(db, database_id, data)
    return ViewResponse(database_id=database_id, **view)


@router.patch("/{database_id}/views/{view_id}", response_model=ViewResponse)
async def update_view(
    database_id: str,
    view_id: str,
    data: ViewUpdate,
    db: DbSession,
    service: DatabaseServiceDep,
) -> ViewResponse:
    view = await service.update_view(db, database_id, view_id, data)
    return ViewResponse(database_id=database_id, **view)


@router.delete("/{database_id}/views/{view_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_view(
    database_id: str,
    view_id: str,
    db: DbSession,
    service: DatabaseServiceDep,
) -> None:
    await service.delete_view(db, database_id, view_id)
