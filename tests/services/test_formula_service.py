"""
Tests for FormulaService: evaluation, rollups and the result cache.
"""

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from brainbase.core.exceptions import (
    DatabaseNotFoundError,
    RecordNotFoundError,
    TypeMismatchError,
    ValidationError,
)
from brainbase.models.formula_cache import FormulaCacheEntry
from brainbase.schemas.database import PropertyCreate, PropertyUpdate
from brainbase.services import DatabaseService, FormulaService, RecordService


@pytest.fixture
def formula_service() -> FormulaService:
    return FormulaService()


async def count_cache_entries(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(FormulaCacheEntry))).scalar() or 0


@pytest_asyncio.fixture
async def computed(
    db_session: AsyncSession,
    database_service: DatabaseService,
    record_service: RecordService,
    projects_and_tasks: dict[str, Any],
) -> dict[str, Any]:
    """Formulas and rollups over one project with two tasks."""
    ctx = dict(projects_and_tasks)
    tasks, projects = ctx["tasks"], ctx["projects"]
    hours_id = tasks.find_property("Hours")["id"]

    ctx["double"] = await database_service.define_property(
        db_session,
        tasks.id,
        PropertyCreate(name="Double", type="formula", config={"expression": "{Hours} * 2"}),
    )
    ctx["task_count"] = await database_service.define_property(
        db_session,
        projects.id,
        PropertyCreate(
            name="Task Count",
            type="rollup",
            config={"relation_property_id": ctx["tasks_rel"]["id"], "rollup_function": "count"},
        ),
    )
    ctx["total_hours"] = await database_service.define_property(
        db_session,
        projects.id,
        PropertyCreate(
            name="Total Hours",
            type="rollup",
            config={
                "relation_property_id": ctx["tasks_rel"]["id"],
                "target_property_id": hours_id,
                "rollup_function": "sum",
            },
        ),
    )
    ctx["summary"] = await database_service.define_property(
        db_session,
        projects.id,
        PropertyCreate(
            name="Summary",
            type="formula",
            config={"expression": '{Name} & ": " & {Total Hours} & "h"'},
        ),
    )

    ctx["project"] = await record_service.create_record(db_session, projects.id, {"Name": "Launch"})
    ctx["first"] = await record_service.create_record(
        db_session, tasks.id, {"Title": "Write", "Hours": 3, "Project": ctx["project"].id}
    )
    ctx["second"] = await record_service.create_record(
        db_session, tasks.id, {"Title": "Ship", "Hours": 1.5, "Project": ctx["project"].id}
    )
    return ctx


class TestEvaluateFormula:
    """Tests for evaluate_formula."""

    @pytest.mark.asyncio
    async def test_result_is_cached(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        first = await formula_service.evaluate_formula(
            db_session, computed["first"].id, computed["double"]["id"]
        )
        second = await formula_service.evaluate_formula(
            db_session, computed["first"].id, computed["double"]["id"]
        )

        assert first["value"] == 6
        assert first["data_type"] == "number"
        assert first["cached"] is False
        assert second["value"] == 6
        assert second["cached"] is True

    @pytest.mark.asyncio
    async def test_update_invalidates_cache(
        self,
        db_session: AsyncSession,
        formula_service: FormulaService,
        record_service: RecordService,
        computed: dict[str, Any],
    ):
        record_id, prop_id = computed["first"].id, computed["double"]["id"]
        await formula_service.evaluate_formula(db_session, record_id, prop_id)

        await record_service.update_record(db_session, record_id, {"Hours": 5})
        result = await formula_service.evaluate_formula(db_session, record_id, prop_id)

        assert result["value"] == 10
        assert result["cached"] is False

    @pytest.mark.asyncio
    async def test_config_change_invalidates_cache(
        self,
        db_session: AsyncSession,
        database_service: DatabaseService,
        formula_service: FormulaService,
        computed: dict[str, Any],
    ):
        record_id, prop_id = computed["first"].id, computed["double"]["id"]
        await formula_service.evaluate_formula(db_session, record_id, prop_id)
        assert await count_cache_entries(db_session) == 1

        await database_service.update_property(
            db_session,
            computed["tasks"].id,
            prop_id,
            PropertyUpdate(config={"expression": "{Hours} * 3"}),
        )

        assert await count_cache_entries(db_session) == 0
        result = await formula_service.evaluate_formula(db_session, record_id, prop_id)
        assert result["value"] == 9

    @pytest.mark.asyncio
    async def test_variables_bypass_cache(
        self,
        db_session: AsyncSession,
        database_service: DatabaseService,
        formula_service: FormulaService,
        computed: dict[str, Any],
    ):
        rated = await database_service.define_property(
            db_session,
            computed["tasks"].id,
            PropertyCreate(name="Cost", type="formula", config={"expression": "$rate * {Hours}"}),
        )

        result = await formula_service.evaluate_formula(
            db_session, computed["first"].id, rated["id"], variables={"rate": 40}
        )

        assert result["value"] == 120
        assert result["cached"] is False
        assert await count_cache_entries(db_session) == 0

    @pytest.mark.asyncio
    async def test_formula_over_rollup(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        result = await formula_service.evaluate_formula(
            db_session, computed["project"].id, computed["summary"]["id"]
        )
        assert result["value"] == "Launch: 4.5h"
        assert result["data_type"] == "text"

    @pytest.mark.asyncio
    async def test_not_a_formula(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        with pytest.raises(TypeMismatchError, match="is not a formula"):
            await formula_service.evaluate_formula(
                db_session, computed["project"].id, computed["task_count"]["id"]
            )

    @pytest.mark.asyncio
    async def test_missing_record(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        with pytest.raises(RecordNotFoundError):
            await formula_service.evaluate_formula(db_session, "missing", computed["double"]["id"])


class TestEvaluateExpression:
    """Tests for evaluate_expression."""

    @pytest.mark.asyncio
    async def test_ad_hoc_expression(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        result = await formula_service.evaluate_expression(
            db_session, computed["second"].id, 'UPPER({Title}) & " " & $suffix', {"suffix": "now"}
        )
        assert result["value"] == "SHIP now"
        assert result["cached"] is False


class TestComputeRollup:
    """Tests for compute_rollup."""

    @pytest.mark.asyncio
    async def test_count_and_sum(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        project_id = computed["project"].id
        count = await formula_service.compute_rollup(
            db_session, project_id, computed["task_count"]["id"]
        )
        total = await formula_service.compute_rollup(
            db_session, project_id, computed["total_hours"]["id"]
        )

        assert count["value"] == 2
        assert total["value"] == 4.5
        assert total["data_type"] == "number"

    @pytest.mark.asyncio
    async def test_rollup_follows_disconnect(
        self,
        db_session: AsyncSession,
        formula_service: FormulaService,
        record_service: RecordService,
        computed: dict[str, Any],
    ):
        await record_service.update_record(db_session, computed["second"].id, {"Project": None})

        count = await formula_service.compute_rollup(
            db_session, computed["project"].id, computed["task_count"]["id"]
        )
        assert count["value"] == 1

    @pytest.mark.asyncio
    async def test_numeric_rollup_over_text_is_rejected(
        self,
        db_session: AsyncSession,
        database_service: DatabaseService,
        computed: dict[str, Any],
    ):
        with pytest.raises(ValidationError, match="requires a numeric target property"):
            await database_service.define_property(
                db_session,
                computed["projects"].id,
                PropertyCreate(
                    name="Title Sum",
                    type="rollup",
                    config={
                        "relation_property_id": computed["tasks_rel"]["id"],
                        "target_property_id": computed["tasks"].find_property("Title")["id"],
                        "rollup_function": "sum",
                    },
                ),
            )

    @pytest.mark.asyncio
    async def test_non_numeric_target_policies(
        self,
        db_session: AsyncSession,
        database_service: DatabaseService,
        formula_service: FormulaService,
        computed: dict[str, Any],
    ):
        label = await database_service.define_property(
            db_session,
            computed["tasks"].id,
            PropertyCreate(name="Label", type="formula", config={"expression": "UPPER({Title})"}),
        )
        strict = await database_service.define_property(
            db_session,
            computed["projects"].id,
            PropertyCreate(
                name="Label Sum",
                type="rollup",
                config={
                    "relation_property_id": computed["tasks_rel"]["id"],
                    "target_property_id": label["id"],
                    "rollup_function": "sum",
                },
            ),
        )
        lenient = await database_service.define_property(
            db_session,
            computed["projects"].id,
            PropertyCreate(
                name="Label Sum Or Null",
                type="rollup",
                config={
                    "relation_property_id": computed["tasks_rel"]["id"],
                    "target_property_id": label["id"],
                    "rollup_function": "sum",
                    "error_handling": "return_null",
                },
            ),
        )

        with pytest.raises(TypeMismatchError):
            await formula_service.compute_rollup(db_session, computed["project"].id, strict["id"])

        result = await formula_service.compute_rollup(
            db_session, computed["project"].id, lenient["id"]
        )
        assert result["value"] is None
        assert result["warnings"]

    @pytest.mark.asyncio
    async def test_not_a_rollup(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        with pytest.raises(TypeMismatchError, match="is not a rollup"):
            await formula_service.compute_rollup(
                db_session, computed["project"].id, computed["summary"]["id"]
            )


class TestValidateAndPurge:
    """Tests for validate_formula and purge_expired."""

    @pytest.mark.asyncio
    async def test_validate_formula(
        self, db_session: AsyncSession, formula_service: FormulaService, computed: dict[str, Any]
    ):
        result = await formula_service.validate_formula(
            db_session, computed["projects"].id, "{Task Count} * 2"
        )
        assert result["is_valid"] is True
        assert result["dependencies"] == [computed["task_count"]["id"]]
        assert result["return_type"] == "number"

        broken = await formula_service.validate_formula(
            db_session, computed["projects"].id, "{Nme} & 1"
        )
        assert broken["is_valid"] is False
        assert broken["errors"][0]["suggestions"] == ["Name"]

    @pytest.mark.asyncio
    async def test_validate_formula_unknown_database(
        self, db_session: AsyncSession, formula_service: FormulaService
    ):
        with pytest.raises(DatabaseNotFoundError):
            await formula_service.validate_formula(db_session, "missing", "1 + 1")

    @pytest.mark.asyncio
    async def test_purge_expired(
        self,
        db_session: AsyncSession,
        database_service: DatabaseService,
        formula_service: FormulaService,
        computed: dict[str, Any],
    ):
        short_lived = await database_service.define_property(
            db_session,
            computed["tasks"].id,
            PropertyCreate(
                name="Half",
                type="formula",
                config={"expression": "{Hours} / 2", "cache_ttl": 0},
            ),
        )
        await formula_service.evaluate_formula(db_session, computed["first"].id, short_lived["id"])
        await formula_service.evaluate_formula(
            db_session, computed["first"].id, computed["double"]["id"]
        )
        assert await count_cache_entries(db_session) == 2

        purged = await formula_service.purge_expired(db_session)

        assert purged == 1
        assert await count_cache_entries(db_session) == 1
