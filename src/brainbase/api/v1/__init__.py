"""API v1 routes."""

from fastapi import APIRouter

from brainbase.api.v1 import databases, formulas, health, records, relations, views

router = APIRouter()

# Include all v1 routes
router.include_router(health.router, tags=["health"])
router.include_router(databases.router, prefix="/databases", tags=["databases"])
router.include_router(records.router, prefix="/records", tags=["records"])
router.include_router(relations.router, prefix="/relations", tags=["relations"])
router.include_router(formulas.router, prefix="/formulas", tags=["formulas"])
router.include_router(views.router, prefix="/views", tags=["views"])

__all__ = ["router"]
