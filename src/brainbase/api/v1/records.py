"""
Record endpoints.

Handles record CRUD operations.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Query, status

from brainbase.api.deps import ActorId, DbSession, RecordServiceDep, RelationServiceDep
from brainbase.schemas.record import (
    DeletePlanResponse,
    RecordCreate,
    RecordListResponse,
    RecordResponse,
    RecordUpdate,
)

router = APIRouter()


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_record(
    data: RecordCreate,
    db: DbSession,
    actor_id: ActorId,
    service: RecordServiceDep,
) -> RecordResponse:
    """
    Create a new record.

    Values may be keyed by property id or name. Relation values are
    record ids (or lists of ids) of the relation's target database.
    """
    record = await service.create_record(db, data.database_id, data.properties, actor_id)
    return RecordResponse.from_model(record)


@router.get("", response_model=RecordListResponse)
async def list_records(
    db: DbSession,
    service: RecordServiceDep,
    database_id: Annotated[str, Query(description="Database to list records from")],
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    page_size: Annotated[int, Query(ge=1, le=500, description="Items per page (max 500)")] = 50,
) -> RecordListResponse:
    records, total = await service.list_records(db, database_id, page=page, page_size=page_size)
    return RecordListResponse(
        items=[RecordResponse.from_model(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{record_id}", response_model=RecordResponse)
async def get_record(
    record_id: str,
    db: DbSession,
    service: RecordServiceDep,
) -> RecordResponse:
    record = await service.get_record(db, record_id)
    return RecordResponse.from_model(record)


@router.patch("/{record_id}", response_model=RecordResponse)
async def update_record(
    record_id: str,
    data: RecordUpdate,
    db: DbSession,
    actor_id: ActorId,
    service: RecordServiceDep,
) -> RecordResponse:
    """
    Update a record.

    Only the listed properties change; a null value clears one. Pass
    ``expected_version`` to reject the write if someone else got there first.
    """
    record = await service.update_record(
        db,
        record_id,
        data.properties,
        actor_id=actor_id,
        expected_version=data.expected_version,
    )
    return RecordResponse.from_model(record)


@router.delete("/{record_id}", response_model=DeletePlanResponse)
async def delete_record(
    record_id: str,
    db: DbSession,
    actor_id: ActorId,
    service: RecordServiceDep,
) -> DeletePlanResponse:
    """
    Delete a record, applying each relation's delete policy.

    Returns the records removed (the record itself plus any cascade) and
    the references cleared on surviving records.
    """
    plan = await service.delete_record(db, record_id, actor_id)
    return DeletePlanResponse(**plan.to_dict())


@router.get("/{record_id}/relations")
async def resolve_relations(
    record_id: str,
    db: DbSession,
    service: RelationServiceDep,
    depth: Annotated[int | None, Query(ge=1, le=5, description="Relation hops to resolve")] = None,
    refresh: Annotated[bool, Query(description="Ignore the cached resolution")] = False,
) -> dict[str, Any]:
    """Linked records of every relation property, with display titles."""
    return await service.resolve_relations(db, record_id, depth=depth, refresh=refresh)


@router.get("/{record_id}/relations/{property_id}", response_model=list[RecordResponse])
async def get_related_records(
    record_id: str,
    property_id: str,
    db: DbSession,
    service: RelationServiceDep,
) -> list[RecordResponse]:
    records = await service.get_related_records(db, record_id, property_id)
    return [RecordResponse.from_model(r) for r in records]
