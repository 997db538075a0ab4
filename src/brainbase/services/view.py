"""View service: run a saved view over a database's records."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brainbase.core.logging import get_logger, log_duration
from brainbase.formula.resolver import ComputedValueResolver
from brainbase.models.record import Record
from brainbase.services.database import DatabaseService
from brainbase.services.formula import load_snapshot
from brainbase.views.engine import ViewDefinition, ViewRecord, run_view

logger = get_logger(__name__)


class ViewService:
    """Service for applying saved views."""

    def __init__(self) -> None:
        self.databases = DatabaseService()

    async def apply_view(
        self,
        db: AsyncSession,
        view_id: str,
        record_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Resolve computed values, then filter, sort and group.

        Args:
            db: Database session
            view_id: Saved view id
            record_ids: Restrict to these records; all active records of the
                view's database when None

        Returns:
            {"view_id", "records": [ViewRecord], "groups": [RecordGroup] | None,
            "warnings"}

        Raises:
            ViewNotFoundError: If view not found
        """
        database, view = await self.databases.get_view_by_id(db, view_id)

        query = (
            select(Record)
            .where(Record.database_id == database.id, Record.deleted_at.is_(None))
            .order_by(Record.created_at, Record.id)
        )
        if record_ids is not None:
            query = query.where(Record.id.in_(record_ids))
        records = list((await db.execute(query)).scalars().all())
        if record_ids is not None:
            # Caller order is the insertion order ties fall back to
            position = {rid: i for i, rid in enumerate(record_ids)}
            records.sort(key=lambda r: position[r.id])

        with log_duration(logger, "view application", view_id=view_id, records=len(records)):
            snapshot = await load_snapshot(db, records)
            resolver = ComputedValueResolver(snapshot)
            rows = [ViewRecord(id=r.id, values=resolver.resolve_record(r.id)) for r in records]
            result = run_view(ViewDefinition.from_dict(view), rows)

        return {
            "view_id": view_id,
            "records": result.records,
            "groups": result.groups,
            "warnings": [w.to_dict() for w in resolver.warnings],
        }
