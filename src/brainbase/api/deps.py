"""
FastAPI dependency injection functions.

Provides reusable dependencies for database sessions, the calling actor
and service instances.
"""

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from brainbase.db.session import get_db
from brainbase.services import (
    DatabaseService,
    FormulaService,
    RecordService,
    RelationService,
    ViewService,
)


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header(description="Opaque id of the calling actor")] = None,
) -> str | None:
    """
    Get the acting user's id from the ``X-Actor-Id`` header.

    Identity is established upstream; the id is only recorded in audit
    columns.
    """
    return x_actor_id or None


def get_database_service() -> DatabaseService:
    """Get database service instance."""
    return DatabaseService()


def get_record_service() -> RecordService:
    """Get record service instance."""
    return RecordService()


def get_relation_service() -> RelationService:
    return RelationService()


def get_formula_service() -> FormulaService:
    return FormulaService()


def get_view_service() -> ViewService:
    return ViewService()


DbSession = Annotated[AsyncSession, Depends(get_db)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
DatabaseServiceDep = Annotated[DatabaseService, Depends(get_database_service)]
RecordServiceDep = Annotated[RecordService, Depends(get_record_service)]
RelationServiceDep = Annotated[RelationService, Depends(get_relation_service)]
FormulaServiceDep = Annotated[FormulaService, Depends(get_formula_service)]
ViewServiceDep = Annotated[ViewService, Depends(get_view_service)]
