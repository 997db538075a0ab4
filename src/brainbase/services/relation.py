"""Relation service: bidirectional links between records."""

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from brainbase.core.config import settings
from brainbase.core.exceptions import (
    ConflictError,
    DatabaseNotFoundError,
    PropertyNotFoundError,
    RecordNotFoundError,
    RestrictedDeleteError,
    TypeMismatchError,
    VersionConflictError,
)
from brainbase.core.locks import record_locks
from brainbase.core.logging import get_logger
from brainbase.db.base import dump_json
from brainbase.models.database import Database
from brainbase.models.property import DeletePolicy, PropertyType, RelationType
from brainbase.models.record import Record
from brainbase.services.formula import invalidate_cache

logger = get_logger(__name__)


@dataclass
class DeletePlan:
    """Records removed by a delete and references cleared on survivors."""

    deleted: list[str] = field(default_factory=list)
    cleared: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"deleted": list(self.deleted), "cleared": list(self.cleared)}


class RelationService:
    """Service for relation operations."""

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------

    async def _get_record(self, db: AsyncSession, record_id: str) -> Record:
        record = await db.get(Record, record_id)
        if not record or record.is_deleted:
            raise RecordNotFoundError(record_id)
        return record

    async def _get_database(self, db: AsyncSession, database_id: str) -> Database:
        database = await db.get(Database, database_id)
        if not database or database.is_deleted:
            raise DatabaseNotFoundError(database_id)
        return database

    async def _get_relation_property(
        self, db: AsyncSession, record: Record, property_id: str
    ) -> dict[str, Any]:
        database = await self._get_database(db, record.database_id)
        prop = database.find_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(property_id)
        if prop["type"] != PropertyType.RELATION.value:
            raise TypeMismatchError(
                f"Property '{prop['name']}' is not a relation",
                expected=PropertyType.RELATION.value,
                actual=prop["type"],
            )
        return prop

    async def paired_property(
        self, db: AsyncSession, prop: dict[str, Any]
    ) -> dict[str, Any] | None:
        """The relation property holding the mirrored side, if any."""
        config = prop["config"]
        if config.get("is_symmetric") and not config.get("target_property_id"):
            return prop
        paired_id = config.get("target_property_id")
        if not paired_id:
            return None
        target_db = await db.get(Database, config["target_database_id"])
        if target_db is None:
            return None
        paired = target_db.get_property(paired_id)
        if paired is None or paired["type"] != PropertyType.RELATION.value:
            return None
        return paired

    async def find_referencing(
        self, db: AsyncSession, record_id: str, exclude: set[str] | None = None
    ) -> list[Record]:
        """Active records whose stored values mention ``record_id``."""
        # Substring prefilter; callers confirm against relation properties
        result = await db.execute(
            select(Record).where(
                Record.data.contains(record_id),
                Record.deleted_at.is_(None),
                Record.id != record_id,
            )
        )
        exclude = exclude or set()
        return [r for r in result.scalars() if r.id not in exclude]

    @staticmethod
    def _touch(record: Record) -> None:
        record.relations_cache = None

    # ------------------------------------------------------------------
    # Link / unlink (no commit)
    # ------------------------------------------------------------------

    async def link(
        self,
        db: AsyncSession,
        source: Record,
        target: Record,
        prop: dict[str, Any],
    ) -> bool:
        """
        Add the edge source -> target and its mirror.

        Returns:
            True if anything changed

        Raises:
            ConflictError: If the relation's cardinality or limit would be violated
        """
        paired = await self.paired_property(db, prop)
        ids = source.get_relation_ids(prop["id"])
        already = target.id in ids
        mirrored = paired is None or source.id in target.get_relation_ids(paired["id"])
        if already and mirrored:
            return False

        if not already:
            await self._check_cardinality(db, source, target, prop, paired, ids)
            source.set_relation_ids(prop["id"], ids + [target.id])
            self._touch(source)

        if paired is not None and source.id not in target.get_relation_ids(paired["id"]):
            target_ids = target.get_relation_ids(paired["id"])
            target.set_relation_ids(paired["id"], target_ids + [source.id])
            self._touch(target)

        logger.debug(
            "Linked records",
            extra={"source": source.id, "target": target.id, "property_id": prop["id"]},
        )
        return True

    async def _check_cardinality(
        self,
        db: AsyncSession,
        source: Record,
        target: Record,
        prop: dict[str, Any],
        paired: dict[str, Any] | None,
        ids: list[str],
    ) -> None:
        config = prop["config"]
        relation_type = RelationType(config.get("relation_type", RelationType.MANY_TO_MANY))

        if ids and (
            not config.get("allow_multiple", True)
            or relation_type in (RelationType.ONE_TO_ONE, RelationType.MANY_TO_ONE)
        ):
            raise ConflictError(
                f"Relation '{prop['name']}' allows a single linked record", resource="Relation"
            )
        limit = config.get("limit")
        if limit is not None and len(ids) >= limit:
            raise ConflictError(
                f"Relation '{prop['name']}' allows at most {limit} linked record(s)",
                resource="Relation",
            )

        if relation_type in (RelationType.ONE_TO_ONE, RelationType.ONE_TO_MANY):
            # A target may belong to a single source
            if paired is not None and paired["id"] != prop["id"]:
                holders = [i for i in target.get_relation_ids(paired["id"]) if i != source.id]
            else:
                holders = [
                    r.id
                    for r in await self.find_referencing(db, target.id, exclude={source.id})
                    if r.database_id == source.database_id
                    and target.id in r.get_relation_ids(prop["id"])
                ]
            if holders:
                raise ConflictError(
                    f"Record '{target.id}' is already linked through '{prop['name']}'",
                    resource="Relation",
                )

    async def unlink(
        self,
        db: AsyncSession,
        source: Record,
        target: Record,
        prop: dict[str, Any],
    ) -> bool:
        """Remove the edge source -> target and its mirror. Returns True if anything changed."""
        changed = False
        ids = source.get_relation_ids(prop["id"])
        if target.id in ids:
            source.set_relation_ids(prop["id"], [i for i in ids if i != target.id])
            self._touch(source)
            changed = True

        paired = await self.paired_property(db, prop)
        if paired is not None:
            target_ids = target.get_relation_ids(paired["id"])
            if source.id in target_ids:
                target.set_relation_ids(paired["id"], [i for i in target_ids if i != source.id])
                self._touch(target)
                changed = True
        return changed

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(
        self,
        db: AsyncSession,
        source_record_id: str,
        target_record_id: str,
        property_id: str,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Connect two records through a relation property.

        Idempotent: connecting an already connected pair returns the
        existing edge (repairing a missing mirror).

        Raises:
            RecordNotFoundError: If either record does not exist
            PropertyNotFoundError: If the property does not exist
            TypeMismatchError: If the property is not a relation or the
                target's database is not the declared target database
            ConflictError: If cardinality or limit would be violated
        """
        async with record_locks.acquire(source_record_id, target_record_id):
            source = await self._get_record(db, source_record_id)
            target = await self._get_record(db, target_record_id)
            prop = await self._get_relation_property(db, source, property_id)

            expected_db = prop["config"]["target_database_id"]
            if target.database_id != expected_db:
                raise TypeMismatchError(
                    f"Record '{target.id}' does not belong to the target database of "
                    f"'{prop['name']}'",
                    expected=expected_db,
                    actual=target.database_id,
                )

            try:
                created = await self.link(db, source, target, prop)
                if created:
                    source.last_edited_by_id = actor_id or source.last_edited_by_id
                    await invalidate_cache(db, record_ids=[source.id, target.id])
                    await db.commit()
            except StaleDataError as e:
                await db.rollback()
                raise VersionConflictError(source_record_id) from e
            except Exception:
                await db.rollback()
                raise

        paired = await self.paired_property(db, prop)
        return {
            "source_record_id": source.id,
            "target_record_id": target.id,
            "property_id": prop["id"],
            "target_property_id": paired["id"] if paired else None,
            "created": created,
        }

    async def disconnect(
        self,
        db: AsyncSession,
        source_record_id: str,
        target_record_id: str,
        property_id: str,
        actor_id: str | None = None,
    ) -> bool:
        """
        Remove both sides of an edge atomically. A no-op if not connected.

        Returns:
            True if an edge was removed
        """
        async with record_locks.acquire(source_record_id, target_record_id):
            source = await self._get_record(db, source_record_id)
            target = await self._get_record(db, target_record_id)
            prop = await self._get_relation_property(db, source, property_id)

            try:
                removed = await self.unlink(db, source, target, prop)
                if removed:
                    source.last_edited_by_id = actor_id or source.last_edited_by_id
                    await invalidate_cache(db, record_ids=[source.id, target.id])
                    await db.commit()
            except StaleDataError as e:
                await db.rollback()
                raise VersionConflictError(source_record_id) from e
            except Exception:
                await db.rollback()
                raise
        return removed

    async def plan_delete(self, db: AsyncSession, record_id: str) -> DeletePlan:
        """
        Work out what deleting a record implies, without changing anything.

        Outgoing edges follow the owning property's ``on_source_delete``;
        incoming edges follow the referencing property's ``on_target_delete``.

        Raises:
            RestrictedDeleteError: A restrict edge references a record in the plan
            ConflictError: The plan exceeds ``cascade_max_records``
        """
        root = await self._get_record(db, record_id)
        schemas: dict[str, list[dict[str, Any]]] = {}
        plan = DeletePlan()
        queued = {root.id}
        worklist: deque[Record] = deque([root])

        async def schema_of(database_id: str) -> list[dict[str, Any]]:
            if database_id not in schemas:
                database = await db.get(Database, database_id)
                schemas[database_id] = database.get_properties() if database else []
            return schemas[database_id]

        def enqueue(other: Record) -> None:
            if other.id in queued:
                return
            if len(queued) >= settings.cascade_max_records:
                raise ConflictError(
                    f"Deleting record '{root.id}' would cascade to more than "
                    f"{settings.cascade_max_records} records",
                    resource="Record",
                )
            queued.add(other.id)
            worklist.append(other)

        while worklist:
            current = worklist.popleft()
            plan.deleted.append(current.id)
            values = current.get_all_values()

            # Outgoing edges
            for prop in await schema_of(current.database_id):
                if prop["type"] != PropertyType.RELATION.value:
                    continue
                policy = DeletePolicy(prop["config"].get("on_source_delete", DeletePolicy.SET_NULL))
                for other_id in values.get(prop["id"]) or []:
                    if other_id in queued:
                        continue
                    other = await db.get(Record, other_id)
                    if other is None or other.is_deleted:
                        continue
                    if policy == DeletePolicy.RESTRICT:
                        raise RestrictedDeleteError(current.id, prop["id"], other.id)
                    if policy == DeletePolicy.CASCADE:
                        enqueue(other)

            # Incoming edges
            for other in await self.find_referencing(db, current.id, exclude=queued):
                for prop in await schema_of(other.database_id):
                    if prop["type"] != PropertyType.RELATION.value:
                        continue
                    if current.id not in other.get_relation_ids(prop["id"]):
                        continue
                    policy = DeletePolicy(
                        prop["config"].get("on_target_delete", DeletePolicy.SET_NULL)
                    )
                    if policy == DeletePolicy.RESTRICT:
                        raise RestrictedDeleteError(current.id, prop["id"], other.id)
                    if policy == DeletePolicy.CASCADE:
                        enqueue(other)

        # References left on surviving records are cleared
        deleted = set(plan.deleted)
        for record_id_ in plan.deleted:
            for other in await self.find_referencing(db, record_id_, exclude=deleted):
                for prop in await schema_of(other.database_id):
                    if prop["type"] == PropertyType.RELATION.value and record_id_ in other.get_relation_ids(
                        prop["id"]
                    ):
                        plan.cleared.append(
                            {"record_id": other.id, "property_id": prop["id"], "removed_id": record_id_}
                        )
        return plan

    async def cascade_on_delete(
        self, db: AsyncSession, record_id: str, actor_id: str | None = None
    ) -> DeletePlan:
        """
        Delete a record, applying every relation's delete policy.

        The plan is built first and applied in a single transaction, so a
        restrict edge anywhere in the cascade leaves everything untouched.
        """
        plan = await self.plan_delete(db, record_id)

        try:
            for item in plan.cleared:
                other = await db.get(Record, item["record_id"])
                ids = other.get_relation_ids(item["property_id"])
                other.set_relation_ids(
                    item["property_id"], [i for i in ids if i != item["removed_id"]]
                )
                self._touch(other)

            for deleted_id in plan.deleted:
                record = await db.get(Record, deleted_id)
                record.soft_delete()
                record.deleted_by_id = actor_id
                self._touch(record)

            await invalidate_cache(
                db,
                record_ids=set(plan.deleted) | {item["record_id"] for item in plan.cleared},
            )
            await db.commit()
        except StaleDataError as e:
            await db.rollback()
            raise VersionConflictError(record_id) from e
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Deleted records",
            extra={"root": record_id, "deleted": len(plan.deleted), "cleared": len(plan.cleared)},
        )
        return plan

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_related_records(
        self, db: AsyncSession, record_id: str, property_id: str
    ) -> list[Record]:
        """Active records linked through a relation property, in stored order."""
        record = await self._get_record(db, record_id)
        prop = await self._get_relation_property(db, record, property_id)
        ids = record.get_relation_ids(prop["id"])
        if not ids:
            return []
        result = await db.execute(
            select(Record).where(Record.id.in_(ids), Record.deleted_at.is_(None))
        )
        by_id = {r.id: r for r in result.scalars()}
        return [by_id[i] for i in ids if i in by_id]

    async def resolve_relations(
        self,
        db: AsyncSession,
        record_id: str,
        depth: int | None = None,
        refresh: bool = False,
    ) -> dict[str, Any]:
        """
        Resolved relation targets of a record, from ``relations_cache`` when filled.

        Returns:
            {property_id: [{"id", "database_id", "title", "relations"?}]}
            where nested "relations" appear when depth > 1
        """
        record = await self._get_record(db, record_id)
        depth = settings.relation_snapshot_depth if depth is None else depth

        cached = record.get_relations_cache()
        if cached is not None and not refresh and cached.get("depth") == depth:
            return cached["relations"]

        schemas: dict[str, list[dict[str, Any]]] = {}
        relations = await self._resolve(db, record, depth, {record.id}, schemas)

        # Not a content change: bypass the version counter
        payload = dump_json({"depth": depth, "relations": relations})
        await db.execute(
            update(Record.__table__)
            .where(Record.__table__.c.id == record.id)
            .values(relations_cache=payload, updated_at=Record.__table__.c.updated_at)
        )
        set_committed_value(record, "relations_cache", payload)
        await db.commit()
        return relations

    async def _resolve(
        self,
        db: AsyncSession,
        record: Record,
        depth: int,
        visited: set[str],
        schemas: dict[str, list[dict[str, Any]]],
    ) -> dict[str, Any]:
        if record.database_id not in schemas:
            database = await db.get(Database, record.database_id)
            schemas[record.database_id] = database.get_properties() if database else []

        relations: dict[str, Any] = {}
        for prop in schemas[record.database_id]:
            if prop["type"] != PropertyType.RELATION.value:
                continue
            ids = record.get_relation_ids(prop["id"])
            if not ids:
                continue
            result = await db.execute(
                select(Record).where(Record.id.in_(ids), Record.deleted_at.is_(None))
            )
            by_id = {r.id: r for r in result.scalars()}
            items = []
            for target_id in ids:
                target = by_id.get(target_id)
                if target is None:
                    continue
                item: dict[str, Any] = {
                    "id": target.id,
                    "database_id": target.database_id,
                    "title": await self._title(db, target, schemas),
                }
                if depth > 1 and target.id not in visited:
                    item["relations"] = await self._resolve(
                        db, target, depth - 1, visited | {target.id}, schemas
                    )
                items.append(item)
            relations[prop["id"]] = items
        return relations

    async def _title(
        self, db: AsyncSession, record: Record, schemas: dict[str, list[dict[str, Any]]]
    ) -> Any:
        """Value of the first text property, used as the record's display title."""
        if record.database_id not in schemas:
            database = await db.get(Database, record.database_id)
            schemas[record.database_id] = database.get_properties() if database else []
        values = record.get_all_values()
        for prop in schemas[record.database_id]:
            if prop["type"] == PropertyType.TEXT.value:
                return values.get(prop["id"])
        return None
