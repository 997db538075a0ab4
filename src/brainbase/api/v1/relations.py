"""
Relation endpoints.

Connect and disconnect records through relation properties.
"""

from fastapi import APIRouter, status

from brainbase.api.deps import ActorId, DbSession, RelationServiceDep
from brainbase.schemas.record import RelationEdge, RelationRequest

router = APIRouter()


@router.post("/connect", response_model=RelationEdge)
async def connect_records(
    data: RelationRequest,
    db: DbSession,
    actor_id: ActorId,
    service: RelationServiceDep,
) -> RelationEdge:
    """
    Connect two records.

    Idempotent: connecting an already connected pair returns the edge
    with ``created`` false. The paired property on the target side is
    updated in the same transaction.
    """
    edge = await service.connect(
        db,
        data.source_record_id,
        data.target_record_id,
        data.property_id,
        actor_id=actor_id,
    )
    return RelationEdge(**edge)


@router.post("/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_records(
    data: RelationRequest,
    db: DbSession,
    actor_id: ActorId,
    service: RelationServiceDep,
) -> None:
    """Remove both sides of an edge. A no-op if the records are not connected."""
    await service.disconnect(
        db,
        data.source_record_id,
        data.target_record_id,
        data.property_id,
        actor_id=actor_id,
    )
