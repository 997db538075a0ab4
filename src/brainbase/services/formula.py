"""Formula and rollup service: evaluation, caching and validation."""

from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from brainbase.core.config import settings
from brainbase.core.exceptions import (
    DatabaseNotFoundError,
    PropertyNotFoundError,
    RecordNotFoundError,
    TypeMismatchError,
)
from brainbase.core.logging import get_logger, log_duration
from brainbase.db.base import utc_now
from brainbase.formula.resolver import (
    ComputedValueResolver,
    EvaluationSnapshot,
    RecordSnapshot,
    infer_data_type,
)
from brainbase.formula.validator import FormulaValidator
from brainbase.models.database import Database
from brainbase.models.formula_cache import FormulaCacheEntry, hash_expression
from brainbase.models.property import PropertyType
from brainbase.models.record import Record

logger = get_logger(__name__)


# =============================================================================
# Snapshot loading
# =============================================================================


async def load_snapshot(
    db: AsyncSession, records: Iterable[Record], depth: int | None = None
) -> EvaluationSnapshot:
    """
    Load the records and schemas needed to resolve ``records``.

    Relation targets are followed ``depth`` levels out so rollups (and
    formulas reading rollups) over related records can be computed
    without further queries.
    """
    depth = settings.relation_snapshot_depth if depth is None else depth
    snapshot = EvaluationSnapshot()
    frontier = list(records)

    for level in range(depth + 1):
        if not frontier:
            break

        missing_schemas = {r.database_id for r in frontier} - set(snapshot.schemas)
        if missing_schemas:
            result = await db.execute(select(Database).where(Database.id.in_(missing_schemas)))
            for database in result.scalars():
                snapshot.add_schema(database.id, database.get_properties())

        next_ids: set[str] = set()
        for record in frontier:
            snapshot.add_record(RecordSnapshot.from_record(record))
        if level == depth:
            break

        for record in frontier:
            values = record.get_all_values()
            for prop in snapshot.schemas.get(record.database_id, []):
                if prop["type"] == PropertyType.RELATION.value:
                    next_ids.update(str(v) for v in values.get(prop["id"]) or [])
        next_ids -= set(snapshot.records)
        if not next_ids:
            break

        result = await db.execute(
            select(Record).where(Record.id.in_(next_ids), Record.deleted_at.is_(None))
        )
        frontier = list(result.scalars())

    return snapshot


# =============================================================================
# Cache invalidation
# =============================================================================


async def invalidate_cache(
    db: AsyncSession,
    *,
    record_ids: Iterable[str] | None = None,
    property_ids: Iterable[str] | None = None,
) -> int:
    """
    Delete cached results matching the given records and/or properties.

    Does not commit; runs inside the caller's unit of work.
    """
    stmt = delete(FormulaCacheEntry)
    if record_ids is not None:
        record_ids = list(record_ids)
        if not record_ids:
            return 0
        stmt = stmt.where(FormulaCacheEntry.record_id.in_(record_ids))
    if property_ids is not None:
        property_ids = list(property_ids)
        if not property_ids:
            return 0
        stmt = stmt.where(FormulaCacheEntry.property_id.in_(property_ids))

    result = await db.execute(stmt)
    if result.rowcount:
        logger.debug(
            "Invalidated cached formula results",
            extra={"count": result.rowcount, "records": record_ids, "properties": property_ids},
        )
    return result.rowcount or 0


class FormulaService:
    """Service for formula and rollup evaluation."""

    async def _load(
        self, db: AsyncSession, record_id: str, property_id: str
    ) -> tuple[Record, Database, dict[str, Any]]:
        record = await db.get(Record, record_id)
        if not record or record.is_deleted:
            raise RecordNotFoundError(record_id)
        database = await db.get(Database, record.database_id)
        if not database or database.is_deleted:
            raise DatabaseNotFoundError(record.database_id)
        prop = database.find_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(property_id)
        return record, database, prop

    async def evaluate_formula(
        self,
        db: AsyncSession,
        record_id: str,
        property_id: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Evaluate a formula property for a record.

        Cached results are reused until their TTL elapses or a dependency
        changes. Caller-supplied variables bypass the cache.

        Returns:
            {"value", "data_type", "cached", "calculated_at", "warnings"}

        Raises:
            RecordNotFoundError: If record not found
            PropertyNotFoundError: If property not found
            TypeMismatchError: If the property is not a formula
            CircularDependencyError: If evaluation re-enters a property
        """
        record, database, prop = await self._load(db, record_id, property_id)
        if prop["type"] != PropertyType.FORMULA.value:
            raise TypeMismatchError(
                f"Property '{prop['name']}' is not a formula", expected="formula", actual=prop["type"]
            )

        config = prop["config"]
        expression = config["expression"]
        expression_hash = hash_expression(expression)
        use_cache = config.get("cache_enabled", True) and not variables

        if use_cache:
            entry = await self._get_entry(db, record.id, prop["id"], expression_hash)
            if entry is not None and not entry.is_expired():
                return {
                    "value": entry.get_value(),
                    "data_type": entry.data_type,
                    "cached": True,
                    "calculated_at": entry.calculated_at,
                    "warnings": [],
                }

        with log_duration(logger, "formula evaluation", record_id=record.id, property_id=prop["id"]):
            snapshot = await load_snapshot(db, [record])
            resolver = ComputedValueResolver(snapshot)
            value = resolver.evaluate(record.id, prop["id"], variables)

        calculated_at = utc_now()
        data_type = infer_data_type(value)
        if use_cache:
            ttl = config.get("cache_ttl")
            ttl = settings.formula_cache_ttl_seconds if ttl is None else ttl
            await self._store_entry(
                db,
                record=record,
                prop=prop,
                expression_hash=expression_hash,
                value=value,
                data_type=data_type,
                calculated_at=calculated_at,
                ttl=ttl,
            )

        return {
            "value": value,
            "data_type": data_type,
            "cached": False,
            "calculated_at": calculated_at,
            "warnings": [w.to_dict() for w in resolver.warnings],
        }

    async def evaluate_expression(
        self,
        db: AsyncSession,
        record_id: str,
        expression: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Evaluate an unsaved expression against a record. Never cached."""
        record = await db.get(Record, record_id)
        if not record or record.is_deleted:
            raise RecordNotFoundError(record_id)

        snapshot = await load_snapshot(db, [record])
        resolver = ComputedValueResolver(snapshot)
        value = resolver.evaluate_expression(record.id, expression, variables)
        return {
            "value": value,
            "data_type": infer_data_type(value),
            "cached": False,
            "calculated_at": utc_now(),
            "warnings": [w.to_dict() for w in resolver.warnings],
        }

    async def compute_rollup(
        self, db: AsyncSession, record_id: str, property_id: str
    ) -> dict[str, Any]:
        """
        Compute a rollup over the record's currently connected records.

        Raises:
            TypeMismatchError: If the property is not a rollup, or a numeric
                function meets a non-numeric target under the throw policy
        """
        record, database, prop = await self._load(db, record_id, property_id)
        if prop["type"] != PropertyType.ROLLUP.value:
            raise TypeMismatchError(
                f"Property '{prop['name']}' is not a rollup", expected="rollup", actual=prop["type"]
            )

        snapshot = await load_snapshot(db, [record])
        resolver = ComputedValueResolver(snapshot)
        value = resolver.resolve(record.id, prop["id"])
        return {
            "value": value,
            "data_type": infer_data_type(value),
            "warnings": [w.to_dict() for w in resolver.warnings],
        }

    async def validate_formula(
        self,
        db: AsyncSession,
        database_id: str,
        expression: str,
        property_id: str | None = None,
    ) -> dict[str, Any]:
        """Validate an expression against a database's properties without evaluating it."""
        database = await db.get(Database, database_id)
        if not database or database.is_deleted:
            raise DatabaseNotFoundError(database_id)
        return FormulaValidator(database.get_properties(), property_id=property_id).validate(
            expression
        )

    async def purge_expired(self, db: AsyncSession) -> int:
        """Delete cache entries whose TTL has elapsed."""
        result = await db.execute(
            delete(FormulaCacheEntry).where(
                FormulaCacheEntry.expires_at.is_not(None),
                FormulaCacheEntry.expires_at <= utc_now(),
            )
        )
        await db.commit()
        count = result.rowcount or 0
        logger.info("Purged expired formula cache entries", extra={"count": count})
        return count

    # ------------------------------------------------------------------
    # Cache storage
    # ------------------------------------------------------------------

    async def _get_entry(
        self, db: AsyncSession, record_id: str, property_id: str, expression_hash: str
    ) -> FormulaCacheEntry | None:
        result = await db.execute(
            select(FormulaCacheEntry).where(
                FormulaCacheEntry.record_id == record_id,
                FormulaCacheEntry.property_id == property_id,
                FormulaCacheEntry.expression_hash == expression_hash,
            )
        )
        return result.scalar_one_or_none()

    async def _store_entry(
        self,
        db: AsyncSession,
        *,
        record: Record,
        prop: dict[str, Any],
        expression_hash: str,
        value: Any,
        data_type: str,
        calculated_at,
        ttl: int,
    ) -> None:
        """Upsert a cache entry; the last writer wins."""
        entry = await self._get_entry(db, record.id, prop["id"], expression_hash)
        if entry is None:
            entry = FormulaCacheEntry(
                record_id=record.id,
                property_id=prop["id"],
                expression_hash=expression_hash,
            )
            db.add(entry)

        entry.expression = prop["config"]["expression"]
        entry.set_value(value)
        entry.data_type = data_type
        entry.set_dependencies(prop["config"].get("dependencies") or [])
        entry.calculated_at = calculated_at
        entry.expires_at = calculated_at + timedelta(seconds=ttl)
        entry.version = record.version

        try:
            await db.commit()
        except IntegrityError:
            # A concurrent evaluation stored the same key first
            await db.rollback()
            logger.debug(
                "Formula cache entry written concurrently",
                extra={"record_id": record.id, "property_id": prop["id"]},
            )
