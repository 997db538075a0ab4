"""Database service: schemas, property definitions and saved views."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from brainbase.core.exceptions import (
    ConflictError,
    DatabaseNotFoundError,
    PropertyNotFoundError,
    ValidationError,
    ViewNotFoundError,
)
from brainbase.core.logging import get_logger
from brainbase.db.base import generate_uuid
from brainbase.formula.dependencies import FormulaDependencyGraph
from brainbase.models.database import Database
from brainbase.models.property import PropertyType
from brainbase.models.record import Record
from brainbase.properties.registry import build_property, reorder, update_property_definition
from brainbase.properties.types.relation import RelationPropertyHandler
from brainbase.properties.types.rollup import RollupPropertyHandler
from brainbase.schemas.database import (
    DatabaseCreate,
    DatabaseUpdate,
    PropertyCreate,
    PropertyUpdate,
    ViewCreate,
    ViewUpdate,
)
from brainbase.services.formula import invalidate_cache
from brainbase.views.engine import validate_view

logger = get_logger(__name__)


class DatabaseService:
    """Service for database operations."""

    async def create_database(
        self,
        db: AsyncSession,
        owner_id: str | None,
        data: DatabaseCreate,
    ) -> Database:
        """
        Create a new database, defining its initial properties in order.

        Raises:
            ValidationError: If any initial property is invalid
        """
        database = Database(
            id=generate_uuid(),
            name=data.name,
            description=data.description,
            icon=data.icon,
            owner_id=owner_id,
            properties="[]",
            views="[]",
        )
        db.add(database)

        try:
            for spec in data.properties:
                await self._define(db, database, spec)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await db.refresh(database)
        logger.info(
            "Created database",
            extra={"database_id": database.id, "database_name": database.name},
        )
        return database

    async def get_database(self, db: AsyncSession, database_id: str) -> Database:
        """
        Get a database by ID.

        Raises:
            DatabaseNotFoundError: If database not found or deleted
        """
        database = await db.get(Database, database_id)
        if not database or database.is_deleted:
            raise DatabaseNotFoundError(database_id)
        return database

    async def list_databases(
        self,
        db: AsyncSession,
        owner_id: str | None = None,
        include_archived: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Database], int]:
        """
        List databases, newest first.

        Returns:
            Tuple of (databases, total count)
        """
        conditions = [Database.deleted_at.is_(None)]
        if owner_id is not None:
            conditions.append(Database.owner_id == owner_id)
        if not include_archived:
            conditions.append(Database.archived_at.is_(None))

        total = (
            await db.execute(select(func.count()).select_from(Database).where(*conditions))
        ).scalar() or 0

        offset = (page - 1) * page_size
        result = await db.execute(
            select(Database)
            .where(*conditions)
            .order_by(Database.created_at.desc(), Database.id)
            .offset(offset)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def update_database(
        self, db: AsyncSession, database_id: str, data: DatabaseUpdate
    ) -> Database:
        database = await self.get_database(db, database_id)
        update_data = data.model_dump(exclude_unset=True)
        archived = update_data.pop("archived", None)
        for key, value in update_data.items():
            if key == "name" and value is None:
                continue
            setattr(database, key, value)
        if archived:
            database.archive()
        elif archived is not None:
            database.unarchive()

        await db.commit()
        await db.refresh(database)
        return database

    async def archive_database(
        self, db: AsyncSession, database_id: str, archived: bool = True
    ) -> Database:
        """Archive (or unarchive) a database. Archived databases are hidden from listings."""
        return await self.update_database(db, database_id, DatabaseUpdate(archived=archived))

    async def delete_database(self, db: AsyncSession, database_id: str) -> None:
        """
        Soft-delete a database.

        Raises:
            ConflictError: If the database still holds active records
        """
        database = await self.get_database(db, database_id)
        active = (
            await db.execute(
                select(func.count())
                .select_from(Record)
                .where(Record.database_id == database.id, Record.deleted_at.is_(None))
            )
        ).scalar() or 0
        if active:
            raise ConflictError(
                f"Database '{database.name}' still has {active} record(s)", resource="Database"
            )

        database.soft_delete()
        await db.commit()
        logger.info("Deleted database", extra={"database_id": database.id})

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    async def define_property(
        self, db: AsyncSession, database_id: str, spec: PropertyCreate
    ) -> dict[str, Any]:
        """
        Add a property to a database.

        A relation with ``create_inverse`` also defines its paired property
        on the target database.

        Raises:
            DatabaseNotFoundError: If database not found
            ValidationError: If the definition is invalid
        """
        database = await self.get_database(db, database_id)
        try:
            prop = await self._define(db, database, spec)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Defined property",
            extra={"database_id": database.id, "property_id": prop["id"], "type": prop["type"]},
        )
        return prop

    async def _define(
        self, db: AsyncSession, database: Database, spec: PropertyCreate
    ) -> dict[str, Any]:
        """Build and store a property (and any inverse) without committing."""
        existing = database.get_properties()
        prop = build_property(spec.model_dump(exclude={"inverse_name"}), existing)
        config = prop["config"]

        if prop["type"] == PropertyType.RELATION.value:
            target_db = await self._relation_target(db, database, config["target_database_id"])
            database.set_properties(existing + [prop])

            if config["is_symmetric"] and target_db.id == database.id:
                config["target_property_id"] = prop["id"]
            elif config["target_property_id"]:
                self._link_existing_inverse(target_db, prop)
            elif config["create_inverse"]:
                inverse = self._build_inverse(database, target_db, prop, spec.inverse_name)
                config["target_property_id"] = inverse["id"]
            self._replace(database, prop)
            return prop

        if prop["type"] == PropertyType.ROLLUP.value:
            await self._check_rollup_target(db, existing, config)

        database.set_properties(existing + [prop])
        return prop

    async def _relation_target(
        self, db: AsyncSession, database: Database, target_database_id: str
    ) -> Database:
        if target_database_id == database.id:
            return database
        target = await db.get(Database, target_database_id)
        if not target or target.is_deleted:
            raise ValidationError(
                f"Target database '{target_database_id}' does not exist",
                errors=[{"field": "config.target_database_id", "message": "not found"}],
            )
        return target

    def _build_inverse(
        self,
        database: Database,
        target_db: Database,
        prop: dict[str, Any],
        inverse_name: str | None,
    ) -> dict[str, Any]:
        """Define the paired relation property on the target database."""
        target_props = target_db.get_properties()
        taken = {p["name"].strip().lower() for p in target_props if p.get("is_visible", True)}
        base_name = inverse_name or database.name
        name, suffix = base_name, 2
        while name.strip().lower() in taken:
            name = f"{base_name} ({suffix})"
            suffix += 1

        inverse = build_property(
            {
                "name": name,
                "type": PropertyType.RELATION.value,
                "config": RelationPropertyHandler.inverse_config(
                    prop["config"], database.id, prop["id"]
                ),
            },
            target_props,
        )
        target_db.set_properties(target_props + [inverse])
        return inverse

    def _link_existing_inverse(self, target_db: Database, prop: dict[str, Any]) -> None:
        paired = target_db.get_property(prop["config"]["target_property_id"])
        if paired is None or paired["type"] != PropertyType.RELATION.value:
            raise ValidationError(
                f"'{prop['config']['target_property_id']}' is not a relation property of the "
                "target database",
                errors=[{"field": "config.target_property_id", "message": "not a relation"}],
            )
        paired["config"]["target_property_id"] = prop["id"]
        self._replace(target_db, paired)

    async def _check_rollup_target(
        self, db: AsyncSession, existing: list[dict[str, Any]], config: dict[str, Any]
    ) -> None:
        target_property_id = config.get("target_property_id")
        if not target_property_id:
            return
        relation = next(p for p in existing if p["id"] == config["relation_property_id"])
        target_db = await db.get(Database, relation["config"]["target_database_id"])
        target = target_db.get_property(target_property_id) if target_db is not None else None
        if target is None:
            raise ValidationError(
                f"Rollup target '{target_property_id}' is not a property of the related database",
                errors=[{"field": "config.target_property_id", "message": "not found"}],
            )
        try:
            RollupPropertyHandler.check_target_type(config, target["type"])
        except ValueError as e:
            raise ValidationError(
                str(e), errors=[{"field": "config.target_property_id", "message": str(e)}]
            )

    @staticmethod
    def _replace(database: Database, prop: dict[str, Any]) -> None:
        database.set_properties(
            [prop if p["id"] == prop["id"] else p for p in database.get_properties()]
        )

    async def update_property(
        self,
        db: AsyncSession,
        database_id: str,
        property_id: str,
        patch: PropertyUpdate,
    ) -> dict[str, Any]:
        """
        Rename or reconfigure a property.

        A config change invalidates cached results of the property and of
        every formula that depends on it.

        Raises:
            PropertyNotFoundError: If property not found
            ValidationError: If the patch is invalid
        """
        database = await self.get_database(db, database_id)
        existing = database.get_properties()
        prop = database.get_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(property_id)

        patch_data = patch.model_dump(exclude_unset=True)
        updated = update_property_definition(prop, patch_data, existing)
        if updated["type"] == PropertyType.ROLLUP.value and patch_data.get("config"):
            others = [p for p in existing if p["id"] != prop["id"]]
            await self._check_rollup_target(db, others, updated["config"])

        try:
            self._replace(database, updated)
            if updated["config"] != prop["config"]:
                graph = FormulaDependencyGraph.from_properties(database.get_properties())
                await invalidate_cache(
                    db, property_ids=[prop["id"], *graph.get_affected(prop["id"])]
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return updated

    async def reorder_properties(
        self, db: AsyncSession, database_id: str, ordered_ids: list[str]
    ) -> list[dict[str, Any]]:
        """
        Reassign display order.

        Raises:
            PropertyNotFoundError: If an id does not belong to the database
        """
        database = await self.get_database(db, database_id)
        properties = reorder(database.get_properties(), ordered_ids)
        database.set_properties(properties)
        await db.commit()
        return properties

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def create_view(
        self, db: AsyncSession, database_id: str, data: ViewCreate
    ) -> dict[str, Any]:
        """
        Save a view on a database.

        Raises:
            ValidationError: Unknown property or unsupported filter operator
        """
        database = await self.get_database(db, database_id)
        views = database.get_views()

        view = validate_view(data.model_dump(mode="json"), database.get_properties())
        view["id"] = generate_uuid()
        view["order"] = max((v.get("order", 0) for v in views), default=-1) + 1
        view["is_default"] = bool(view.get("is_default")) or not views
        if view["is_default"]:
            for other in views:
                other["is_default"] = False

        database.set_views(views + [view])
        await db.commit()
        logger.info("Created view", extra={"database_id": database.id, "view_id": view["id"]})
        return view

    async def update_view(
        self, db: AsyncSession, database_id: str, view_id: str, data: ViewUpdate
    ) -> dict[str, Any]:
        database = await self.get_database(db, database_id)
        views = database.get_views()
        current = next((v for v in views if v["id"] == view_id), None)
        if current is None:
            raise ViewNotFoundError(view_id)

        patch = data.model_dump(mode="json", exclude_unset=True)
        view = validate_view({**current, **patch}, database.get_properties())
        if view.get("is_default"):
            for other in views:
                other["is_default"] = False

        database.set_views([view if v["id"] == view_id else v for v in views])
        await db.commit()
        return view

    async def delete_view(self, db: AsyncSession, database_id: str, view_id: str) -> None:
        database = await self.get_database(db, database_id)
        views = database.get_views()
        if not any(v["id"] == view_id for v in views):
            raise ViewNotFoundError(view_id)
        database.set_views([v for v in views if v["id"] != view_id])
        await db.commit()

    async def get_view_by_id(
        self, db: AsyncSession, view_id: str
    ) -> tuple[Database, dict[str, Any]]:
        """
        Find a view and its database from the view id alone.

        Raises:
            ViewNotFoundError: If no active database holds the view
        """
        result = await db.execute(
            select(Database).where(
                Database.views.contains(view_id), Database.deleted_at.is_(None)
            )
        )
        for database in result.scalars():
            view = database.get_view(view_id)
            if view is not None:
                return database, view
        raise ViewNotFoundError(view_id)
