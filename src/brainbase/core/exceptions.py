"""
Custom exceptions for BrainBase.

Provides a hierarchy of exceptions that map to HTTP status codes
and include structured error information. Non-fatal evaluation
problems are modelled as ``Warning`` subclasses that are collected
into results instead of being raised.
"""

from typing import Any


class BrainBaseException(Exception):
    """
    Base exception for all BrainBase errors.

    All custom exceptions should inherit from this class.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# HTTP 400 - Bad Request Errors
# =============================================================================


class BadRequestError(BrainBaseException):
    """Invalid request parameters or payload."""

    status_code = 400


class ValidationError(BadRequestError):
    """Malformed property, filter, view or expression definition."""

    def __init__(
        self,
        message: str = "Validation error",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"errors": errors or []},
        )


class InvalidRelationError(BadRequestError):
    """Relation value does not reference a record of the declared target database."""

    def __init__(
        self,
        property_id: str,
        record_id: str | None = None,
        target_database_id: str | None = None,
    ) -> None:
        message = f"Invalid relation value for property '{property_id}'"
        if record_id:
            message = (
                f"Record '{record_id}' is not a valid target for relation property "
                f"'{property_id}'"
            )
        super().__init__(
            message=message,
            code="INVALID_RELATION",
            details={
                "property_id": property_id,
                "record_id": record_id,
                "target_database_id": target_database_id,
            },
        )


# =============================================================================
# HTTP 404 - Not Found Errors
# =============================================================================


class NotFoundError(BrainBaseException):
    """Requested resource not found."""

    status_code = 404

    def __init__(
        self,
        resource: str,
        identifier: str | None = None,
    ) -> None:
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID '{identifier}' not found"

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, "identifier": identifier},
        )


class DatabaseNotFoundError(NotFoundError):
    """Database not found."""

    def __init__(self, database_id: str | None = None) -> None:
        super().__init__(resource="Database", identifier=database_id)


class PropertyNotFoundError(NotFoundError):
    """Property not found."""

    def __init__(self, property_id: str | None = None) -> None:
        super().__init__(resource="Property", identifier=property_id)


class RecordNotFoundError(NotFoundError):
    """Record not found."""

    def __init__(self, record_id: str | None = None) -> None:
        super().__init__(resource="Record", identifier=record_id)


class ViewNotFoundError(NotFoundError):
    """View not found."""

    def __init__(self, view_id: str | None = None) -> None:
        super().__init__(resource="View", identifier=view_id)


# =============================================================================
# HTTP 409 - Conflict Errors
# =============================================================================


class ConflictError(BrainBaseException):
    """Resource conflict: stale version, blocked delete or cardinality violation."""

    status_code = 409

    def __init__(
        self,
        message: str,
        resource: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="CONFLICT",
            details={"resource": resource},
        )


class VersionConflictError(ConflictError):
    """Stored version does not match the expected pre-update version."""

    def __init__(
        self,
        record_id: str,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        super().__init__(
            message=f"Record '{record_id}' was modified concurrently",
            resource="Record",
        )
        self.details["record_id"] = record_id
        self.details["expected_version"] = expected
        self.details["actual_version"] = actual


class RestrictedDeleteError(ConflictError):
    """Delete blocked by a relation with the restrict policy."""

    def __init__(self, record_id: str, property_id: str, other_record_id: str) -> None:
        super().__init__(
            message=(
                f"Record '{record_id}' cannot be deleted: relation '{property_id}' "
                f"still references record '{other_record_id}'"
            ),
            resource="Record",
        )
        self.details["record_id"] = record_id
        self.details["property_id"] = property_id
        self.details["other_record_id"] = other_record_id


# =============================================================================
# HTTP 422 - Unprocessable Entity
# =============================================================================


class UnprocessableEntityError(BrainBaseException):
    """Request cannot be processed."""

    status_code = 422


class TypeMismatchError(UnprocessableEntityError):
    """Value or target does not match the declared type."""

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None) -> None:
        super().__init__(
            message=message,
            code="TYPE_MISMATCH",
            details={"expected": expected, "actual": actual},
        )


class FormulaError(UnprocessableEntityError):
    """Formula parsing or execution error."""

    def __init__(self, formula: str, error: str, code: str = "FORMULA_ERROR") -> None:
        super().__init__(
            message=f"Formula error: {error}",
            code=code,
            details={"formula": formula, "error": error},
        )


class FormulaSyntaxError(FormulaError):
    """Expression could not be tokenized or parsed."""

    def __init__(self, formula: str, error: str, position: int | None = None) -> None:
        super().__init__(formula=formula, error=error, code="FORMULA_SYNTAX_ERROR")
        self.position = position
        self.details["position"] = position


class FormulaRuntimeError(FormulaError):
    """Expression parsed but failed while being evaluated."""

    def __init__(self, formula: str, error: str) -> None:
        super().__init__(formula=formula, error=error, code="FORMULA_RUNTIME_ERROR")


class CircularDependencyError(FormulaError):
    """Evaluation re-entered a property already on the active stack."""

    def __init__(self, chain: list[str], formula: str = "") -> None:
        super().__init__(
            formula=formula,
            error="Circular dependency: " + " -> ".join(chain),
            code="CIRCULAR_DEPENDENCY",
        )
        self.details["chain"] = chain


class FormulaLimitError(FormulaError):
    """Evaluation exceeded the configured step or depth bound."""

    def __init__(self, formula: str, limit: str, value: int) -> None:
        super().__init__(
            formula=formula,
            error=f"Evaluation exceeded {limit} limit of {value}",
            code="FORMULA_LIMIT_EXCEEDED",
        )
        self.details["limit"] = limit
        self.details["value"] = value


# =============================================================================
# Non-fatal warnings
# =============================================================================


class EvaluationWarning(Warning):
    """Base class for warnings surfaced alongside a best-effort result."""

    warning_type = "evaluation"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert warning to dictionary for API response."""
        return {"type": self.warning_type, "message": self.message, **self.details}


class TypeCoercionWarning(EvaluationWarning):
    """A value was coerced or skipped because of its type."""

    warning_type = "type_coercion"


class PrecisionLossWarning(EvaluationWarning):
    """A numeric result was rounded."""

    warning_type = "precision_loss"


class ComputationWarning(EvaluationWarning):
    """A computed property failed and was left blank."""

    warning_type = "runtime"
