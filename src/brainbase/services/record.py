"""Record service for business logic."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from brainbase.core.exceptions import (
    DatabaseNotFoundError,
    InvalidRelationError,
    RecordNotFoundError,
    ValidationError,
    VersionConflictError,
)
from brainbase.core.locks import record_locks
from brainbase.core.logging import get_logger
from brainbase.db.base import generate_uuid
from brainbase.formula.dependencies import FormulaDependencyGraph
from brainbase.models.database import Database
from brainbase.models.property import PropertyType
from brainbase.models.record import Record
from brainbase.properties import get_property_handler
from brainbase.properties.types.relation import RelationPropertyHandler
from brainbase.services.formula import invalidate_cache
from brainbase.services.relation import DeletePlan, RelationService

logger = get_logger(__name__)


class RecordService:
    """Service for record operations."""

    def __init__(self) -> None:
        self.relations = RelationService()

    async def _get_database(self, db: AsyncSession, database_id: str) -> Database:
        database = await db.get(Database, database_id)
        if not database or database.is_deleted:
            raise DatabaseNotFoundError(database_id)
        return database

    def _prepare_values(
        self, database: Database, values: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, tuple[dict[str, Any], list[str]]]]:
        """
        Validate and serialize caller-supplied values.

        Returns:
            (plain values keyed by property id, relation targets keyed by
            property id as (property, ids)); a None value means "clear"

        Raises:
            ValidationError: Read-only property or invalid value
            InvalidRelationError: A relation value holds something other than record ids
        """
        plain: dict[str, Any] = {}
        relations: dict[str, tuple[dict[str, Any], list[str]]] = {}
        errors: list[dict[str, Any]] = []

        for key, value in values.items():
            prop = database.find_property(key)
            if prop is None:
                # Unknown keys are kept as-is
                plain[key] = value
                continue

            handler = get_property_handler(prop["type"])
            if handler is None or handler.is_read_only() or prop.get("is_system"):
                errors.append(
                    {"field": prop["id"], "message": f"Property '{prop['name']}' is read-only"}
                )
                continue

            is_relation = prop["type"] == PropertyType.RELATION.value
            if is_relation and RelationPropertyHandler.malformed_item(value):
                raise InvalidRelationError(prop["id"])

            try:
                handler.validate(value, prop["config"])
                serialized = handler.serialize_with_config(value, prop["config"])
            except ValueError as e:
                errors.append({"field": prop["id"], "message": str(e)})
                continue

            if is_relation:
                relations[prop["id"]] = (prop, serialized or [])
            else:
                plain[prop["id"]] = serialized

        if errors:
            raise ValidationError(errors[0]["message"], errors=errors)
        return plain, relations

    async def _load_targets(
        self, db: AsyncSession, prop: dict[str, Any], ids: list[str]
    ) -> list[Record]:
        """Load relation targets, checking each is an active record of the target database."""
        if not ids:
            return []
        target_db = prop["config"]["target_database_id"]
        result = await db.execute(select(Record).where(Record.id.in_(ids)))
        by_id = {r.id: r for r in result.scalars()}
        targets = []
        for target_id in ids:
            target = by_id.get(target_id)
            if target is None or target.is_deleted or target.database_id != target_db:
                raise InvalidRelationError(prop["id"], target_id, target_db)
            targets.append(target)
        return targets

    async def create_record(
        self,
        db: AsyncSession,
        database_id: str,
        properties: dict[str, Any],
        actor_id: str | None = None,
    ) -> Record:
        """
        Create a new record in a database.

        Args:
            db: Database session
            database_id: Database the record belongs to
            properties: Values keyed by property id or name
            actor_id: Opaque id of the creating actor

        Returns:
            Created record

        Raises:
            DatabaseNotFoundError: If database not found
            ValidationError: If a value is invalid or targets a read-only property
            InvalidRelationError: If a relation value is not an active record
                of the declared target database
            ConflictError: If a relation's cardinality would be violated
        """
        database = await self._get_database(db, database_id)
        plain, relations = self._prepare_values(database, properties)

        record = Record(
            id=generate_uuid(),
            database_id=database.id,
            created_by_id=actor_id,
            last_edited_by_id=actor_id,
        )
        record.set_all_values(plain)
        db.add(record)

        try:
            for prop, ids in relations.values():
                for target in await self._load_targets(db, prop, ids):
                    await self.relations.link(db, record, target, prop)
            if relations:
                await invalidate_cache(
                    db, record_ids=[i for _, ids in relations.values() for i in ids]
                )
            await db.commit()
        except StaleDataError as e:
            await db.rollback()
            linked = [i for _, ids in relations.values() for i in ids]
            raise VersionConflictError(", ".join(linked) or record.id) from e
        except Exception:
            await db.rollback()
            raise

        await db.refresh(record)
        logger.info(
            "Created record", extra={"record_id": record.id, "database_id": database.id}
        )
        return record

    async def get_record(self, db: AsyncSession, record_id: str) -> Record:
        """
        Get a record by ID.

        Raises:
            RecordNotFoundError: If record not found or deleted
        """
        record = await db.get(Record, record_id)
        if not record or record.is_deleted:
            raise RecordNotFoundError(record_id)
        return record

    async def list_records(
        self,
        db: AsyncSession,
        database_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Record], int]:
        """
        List active records of a database, oldest first.

        Returns:
            Tuple of (records, total count)
        """
        await self._get_database(db, database_id)

        conditions = (Record.database_id == database_id, Record.deleted_at.is_(None))
        total = (
            await db.execute(select(func.count()).select_from(Record).where(*conditions))
        ).scalar() or 0

        offset = (page - 1) * page_size
        result = await db.execute(
            select(Record)
            .where(*conditions)
            .order_by(Record.created_at, Record.id)
            .offset(offset)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def update_record(
        self,
        db: AsyncSession,
        record_id: str,
        patch: dict[str, Any],
        actor_id: str | None = None,
        expected_version: int | None = None,
    ) -> Record:
        """
        Update the listed properties of a record.

        Raises:
            RecordNotFoundError: If record not found
            VersionConflictError: If ``expected_version`` is stale, or a
                concurrent write is detected on flush
            ValidationError: If a value is invalid
            InvalidRelationError: If a relation value is not a valid target
        """
        async with record_locks.acquire(record_id):
            record = await self.get_record(db, record_id)
            if expected_version is not None and record.version != expected_version:
                raise VersionConflictError(record.id, expected_version, record.version)

            database = await self._get_database(db, record.database_id)
            plain, relations = self._prepare_values(database, patch)

            current = record.get_all_values()
            changed = [key for key, value in plain.items() if current.get(key) != value]
            related: set[str] = set()

            try:
                values = dict(current)
                for key in changed:
                    if plain[key] is None:
                        values.pop(key, None)
                    else:
                        values[key] = plain[key]
                record.set_all_values(values)

                for prop_id, (prop, ids) in relations.items():
                    old_ids = record.get_relation_ids(prop_id)
                    if old_ids == ids:
                        continue
                    changed.append(prop_id)
                    related.update(old_ids)
                    related.update(ids)

                    removed = [i for i in old_ids if i not in ids]
                    if removed:
                        result = await db.execute(select(Record).where(Record.id.in_(removed)))
                        for target in result.scalars():
                            await self.relations.unlink(db, record, target, prop)
                        # Dangling ids with no record left behind
                        record.set_relation_ids(
                            prop_id, [i for i in record.get_relation_ids(prop_id) if i in ids]
                        )
                    added = [i for i in ids if i not in old_ids]
                    for target in await self._load_targets(db, prop, added):
                        await self.relations.link(db, record, target, prop)

                if not changed:
                    return record

                record.last_edited_by_id = actor_id or record.last_edited_by_id
                await self._invalidate(db, database, record, changed, related)
                await db.commit()
            except StaleDataError:
                await db.rollback()
                raise VersionConflictError(record_id, expected_version)
            except Exception:
                await db.rollback()
                raise

        await db.refresh(record)
        logger.info(
            "Updated record",
            extra={"record_id": record.id, "changed": changed, "version": record.version},
        )
        return record

    async def _invalidate(
        self,
        db: AsyncSession,
        database: Database,
        record: Record,
        changed: list[str],
        related: set[str],
    ) -> None:
        """Drop cached results that may read a changed value."""
        graph = FormulaDependencyGraph.from_properties(database.get_properties())
        affected: set[str] = set()
        for prop_id in changed:
            affected.update(graph.get_affected(prop_id))
        if affected:
            await invalidate_cache(db, record_ids=[record.id], property_ids=affected)

        # Rollups on other records may aggregate this record's values
        neighbours = set(related)
        for prop in database.get_properties():
            if prop["type"] == PropertyType.RELATION.value:
                neighbours.update(record.get_relation_ids(prop["id"]))
        neighbours.update(r.id for r in await self.relations.find_referencing(db, record.id))
        neighbours.discard(record.id)
        if neighbours:
            await invalidate_cache(db, record_ids=neighbours)

    async def delete_record(
        self, db: AsyncSession, record_id: str, actor_id: str | None = None
    ) -> DeletePlan:
        """
        Soft-delete a record, applying relation delete policies.

        Raises:
            RecordNotFoundError: If record not found
            ConflictError: If a restrict relation blocks the delete
        """
        async with record_locks.acquire(record_id):
            return await self.relations.cascade_on_delete(db, record_id, actor_id)
