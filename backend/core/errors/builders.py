"""Domain-Specific Error Builders

Ergonomic constructors for the errors the review engine produces.
Each builder returns ``Err(AppError)`` with the matching code and context.
"""
from uuid import UUID

from .types import AppError, ErrorCode, ErrorContext, Err


# =============================================================================
# Validation Errors (E2xxx)
# =============================================================================

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC,
    field: str | None = None,
    value: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    meta = {"field": field, "value": value, **metadata}
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in meta.items() if v is not None},
    ))


def invalid_format(
    field: str, expected: str, got: str | None = None, origin: str = ""
) -> Err[AppError]:
    msg = f"Invalid format for '{field}': expected {expected}"
    if got:
        msg += f", got '{got}'"
    return validation_error(
        msg,
        code=ErrorCode.E2002_INVALID_FORMAT,
        field=field,
        expected=expected,
        origin=origin,
    )


# =============================================================================
# Authentication Errors (E3xxx)
# =============================================================================

def token_missing(origin: str = "") -> Err[AppError]:
    return Err(AppError(
        code=ErrorCode.E3004_TOKEN_MISSING,
        message="Authentication required",
        context=ErrorContext(origin=origin),
    ))


def resource_forbidden(resource: str, origin: str = "") -> Err[AppError]:
    return Err(AppError(
        code=ErrorCode.E3011_RESOURCE_FORBIDDEN,
        message=f"Access to {resource} is forbidden",
        context=ErrorContext(origin=origin),
        metadata={"resource": resource},
    ))


# =============================================================================
# Persistence Errors (E4xxx)
# =============================================================================

def db_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E4000_DATABASE_GENERIC,
    table: str | None = None,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    meta = {"table": table, **metadata}
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in meta.items() if v is not None},
        cause=cause,
    ))


def not_found(
    entity: str,
    id: str | UUID | None = None,
    origin: str = "",
) -> Err[AppError]:
    msg = f"{entity} not found"
    if id:
        msg += f": {id}"
    return db_error(
        msg,
        code=ErrorCode.E4010_NOT_FOUND,
        entity=entity,
        entity_id=str(id) if id else None,
        origin=origin,
    )


def duplicate_key(
    entity: str, field: str, value: str, origin: str = ""
) -> Err[AppError]:
    return db_error(
        f"{entity} with {field}='{value}' already exists",
        code=ErrorCode.E4011_DUPLICATE_KEY,
        entity=entity,
        field=field,
        value=value,
        origin=origin,
    )


def foreign_key_violation(
    entity: str, reference: str, origin: str = ""
) -> Err[AppError]:
    return db_error(
        f"Referenced {reference} does not exist for {entity}",
        code=ErrorCode.E4012_FOREIGN_KEY_VIOLATION,
        entity=entity,
        reference=reference,
        origin=origin,
    )


def db_connection_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    msg = "Database connection failed"
    if reason:
        msg += f": {reason}"
    return db_error(msg, code=ErrorCode.E4001_CONNECTION_FAILED, origin=origin)


def db_timeout(operation: str, origin: str = "") -> Err[AppError]:
    return Err(AppError(
        code=ErrorCode.E1002_TIMEOUT,
        message=f"Operation '{operation}' timed out",
        context=ErrorContext(origin=origin),
        metadata={"operation": operation},
    ))


def transaction_failed(
    reason: str = "", origin: str = "", cause: Exception | None = None
) -> Err[AppError]:
    msg = "Database transaction failed"
    if reason:
        msg += f": {reason}"
    return db_error(msg, code=ErrorCode.E4003_TRANSACTION_FAILED, origin=origin, cause=cause)


# =============================================================================
# Business Logic Errors (E5xxx)
# =============================================================================

def business_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E5000_BUSINESS_GENERIC,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
    ))


def operation_not_allowed(
    operation: str, reason: str = "", origin: str = ""
) -> Err[AppError]:
    msg = f"Operation '{operation}' not allowed"
    if reason:
        msg += f": {reason}"
    return business_error(
        msg,
        code=ErrorCode.E5001_OPERATION_NOT_ALLOWED,
        operation=operation,
        origin=origin,
    )


def state_conflict(
    entity: str, current_state: str, required_state: str, origin: str = ""
) -> Err[AppError]:
    return business_error(
        f"{entity} is in '{current_state}' state, requires '{required_state}'",
        code=ErrorCode.E5002_STATE_CONFLICT,
        entity=entity,
        current_state=current_state,
        required_state=required_state,
        origin=origin,
    )


def precondition_failed(
    condition: str, reason: str = "", origin: str = ""
) -> Err[AppError]:
    msg = f"Precondition failed: {condition}"
    if reason:
        msg += f" ({reason})"
    return business_error(
        msg,
        code=ErrorCode.E5003_PRECONDITION_FAILED,
        condition=condition,
        origin=origin,
    )


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================

def internal_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E9001_UNEXPECTED_ERROR,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
        cause=cause,
    ))
