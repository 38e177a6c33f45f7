"""Monadic Error Handling System

Type-safe error handling modelled on Haskell's Either and Rust's Result.

Key components:
- Result[T, E]: container for success/failure
- AppError: error value with code, message, metadata and tracing context
- ErrorCode: hierarchical error code taxonomy
- Builder functions: ergonomic error construction

Usage:
    from core.errors import Ok, Err, Result, AppError, not_found

    async def find_session(session_id: str) -> Result[ReviewSession, AppError]:
        session = registry.get(session_id)
        if session is None:
            return not_found("ReviewSession", session_id, origin="api.review")
        return Ok(session)

    match await find_session("abc"):
        case Ok(session):
            ...
        case Err(error):
            log.warning(error.message, code=error.code.name)
"""
from .types import (
    Result,
    Ok,
    Err,
    AppError,
    ErrorCode,
    ErrorContext,
    sequence_results,
)

from .builders import (
    # Validation (E2xxx)
    validation_error,
    invalid_format,
    # Auth (E3xxx)
    token_missing,
    resource_forbidden,
    # Persistence (E4xxx)
    db_error,
    not_found,
    duplicate_key,
    foreign_key_violation,
    db_connection_failed,
    db_timeout,
    transaction_failed,
    # Business (E5xxx)
    business_error,
    operation_not_allowed,
    state_conflict,
    precondition_failed,
    # Internal (E9xxx)
    internal_error,
)

from .boundaries import (
    ErrorMapper,
    DatabaseErrorMapper,
    map_errors,
    map_db_errors,
)

from .handlers import (
    AppErrorException,
    register_error_handlers,
    result_to_response,
    raise_error,
    raise_result,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AppError",
    "ErrorCode",
    "ErrorContext",
    "sequence_results",
    "validation_error",
    "invalid_format",
    "token_missing",
    "resource_forbidden",
    "db_error",
    "not_found",
    "duplicate_key",
    "foreign_key_violation",
    "db_connection_failed",
    "db_timeout",
    "transaction_failed",
    "business_error",
    "operation_not_allowed",
    "state_conflict",
    "precondition_failed",
    "internal_error",
    "ErrorMapper",
    "DatabaseErrorMapper",
    "map_errors",
    "map_db_errors",
    "AppErrorException",
    "register_error_handlers",
    "result_to_response",
    "raise_error",
    "raise_result",
]
