"""Service layer modules."""

from brainbase.services.database import DatabaseService
from brainbase.services.formula import FormulaService, invalidate_cache, load_snapshot
from brainbase.services.record import RecordService
from brainbase.services.relation import DeletePlan, RelationService
from brainbase.services.view import ViewService

__all__ = [
    "DatabaseService",
    "DeletePlan",
    "FormulaService",
    "RecordService",
    "RelationService",
    "ViewService",
    "invalidate_cache",
    "load_snapshot",
]
