"""
View endpoints.

Run saved views over a database's records.
"""

from typing import Annotated

from fastapi import APIRouter, Body

from brainbase.api.deps import DbSession, ViewServiceDep
from brainbase.schemas.formula import (
    ApplyViewRequest,
    ApplyViewResponse,
    ViewGroupResponse,
    ViewRecordResponse,
)

router = APIRouter()


@router.post("/{view_id}/apply", response_model=ApplyViewResponse)
async def apply_view(
    view_id: str,
    db: DbSession,
    service: ViewServiceDep,
    data: Annotated[ApplyViewRequest | None, Body()] = None,
) -> ApplyViewResponse:
    """
    Filter, sort and group a database's records through a saved view.

    Values in the response include computed properties.
    """
    record_ids = data.record_ids if data else None
    result = await service.apply_view(db, view_id, record_ids=record_ids)

    groups = None
    if result["groups"] is not None:
        groups = [
            ViewGroupResponse(
                key=g.key,
                record_ids=[r.id for r in g.records],
                is_ungrouped=g.is_ungrouped,
            )
            for g in result["groups"]
        ]
    return ApplyViewResponse(
        view_id=result["view_id"],
        records=[ViewRecordResponse(id=r.id, values=dict(r.values)) for r in result["records"]],
        groups=groups,
        warnings=result["warnings"],
    )
