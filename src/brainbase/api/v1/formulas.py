"""
Formula endpoints.

Validate expressions and evaluate formulas against records.
"""

from fastapi import APIRouter

from brainbase.api.deps import DbSession, FormulaServiceDep
from brainbase.schemas.formula import (
    FormulaEvaluateRequest,
    FormulaResult,
    FormulaValidateRequest,
    FormulaValidationResponse,
)

router = APIRouter()


@router.post("/validate", response_model=FormulaValidationResponse)
async def validate_formula(
    data: FormulaValidateRequest,
    db: DbSession,
    service: FormulaServiceDep,
) -> FormulaValidationResponse:
    """
    Validate an expression against a database's properties.

    Always answers 200; problems are reported in ``errors`` and
    ``warnings`` rather than raised.
    """
    result = await service.validate_formula(
        db, data.database_id, data.expression, property_id=data.property_id
    )
    return FormulaValidationResponse(**result)


@router.post("/evaluate", response_model=FormulaResult)
async def evaluate_formula(
    data: FormulaEvaluateRequest,
    db: DbSession,
    service: FormulaServiceDep,
) -> FormulaResult:
    """
    Evaluate a formula property, or an ad hoc expression, for one record.

    Saved formulas are served from the cache when possible; ad hoc
    expressions and calls with variables are always computed.
    """
    if data.property_id:
        result = await service.evaluate_formula(
            db, data.record_id, data.property_id, variables=data.variables or None
        )
    else:
        result = await service.evaluate_expression(
            db, data.record_id, data.expression, variables=data.variables or None
        )
    return FormulaResult(**result)
