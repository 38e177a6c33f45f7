"""Error Boundary Mappers

Errors are mapped once, at the module boundary: repository methods turn
SQLAlchemy exceptions into E4xxx AppErrors so that the session controller
only ever sees ``Result`` values.
"""
from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy.exc import (
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
)

from .types import (
    AppError,
    ErrorCode,
    ErrorContext,
    Err,
    Ok,
    Result,
)
from .builders import (
    db_connection_failed,
    db_timeout,
    duplicate_key,
    foreign_key_violation,
    internal_error,
    transaction_failed,
)

T = TypeVar("T")


class ErrorMapper(ABC, Generic[T]):
    """Abstract base for error mappers at module boundaries."""

    @abstractmethod
    def map_error(self, error: AppError) -> AppError:
        """Map internal error to boundary error."""

    @abstractmethod
    def map_exception(self, exc: Exception) -> AppError:
        """Map an escaped exception to boundary error."""

    def map_result(self, result: Result[T, AppError]) -> Result[T, AppError]:
        match result:
            case Ok(_):
                return result
            case Err(e):
                return Err(self.map_error(e))


class DatabaseErrorMapper(ErrorMapper[T]):
    """Maps SQLAlchemy failures onto persistence error codes."""

    def __init__(self, origin: str = "database"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if 4000 <= error.code.value < 5000:
            return error
        return error.with_context(origin=self.origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, IntegrityError):
            return self._map_integrity_error(exc)
        if isinstance(exc, OperationalError):
            return self._map_operational_error(exc)
        if isinstance(exc, SQLAlchemyError):
            return transaction_failed(str(exc), origin=self.origin, cause=exc).error

        return internal_error(
            f"Database error: {exc}",
            origin=self.origin,
            cause=exc,
        ).error

    def _map_integrity_error(self, exc: IntegrityError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "duplicate key" in lowered or "unique constraint" in lowered:
            return duplicate_key(
                entity="record",
                field="unknown",
                value="unknown",
                origin=self.origin,
            ).error

        if "foreign key" in lowered:
            return foreign_key_violation(
                entity="record",
                reference="unknown",
                origin=self.origin,
            ).error

        return AppError(
            code=ErrorCode.E4013_CHECK_CONSTRAINT,
            message=f"Constraint violation: {message}",
            context=ErrorContext(origin=self.origin),
            cause=exc,
        )

    def _map_operational_error(self, exc: OperationalError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "timeout" in lowered or "locked" in lowered:
            return db_timeout("database query", origin=self.origin).error

        if "connect" in lowered:
            return db_connection_failed(message, origin=self.origin).error

        return transaction_failed(message, origin=self.origin, cause=exc).error


def map_errors(mapper: ErrorMapper[T]):
    """Decorator mapping both returned Errs and raised exceptions at a boundary.

    Usage:
        @map_errors(DatabaseErrorMapper("review_repository"))
        async def get_streak(self, user_id) -> Result[Streak | None, AppError]:
            ...
    """
    def decorator(fn: Callable[..., Awaitable[Result[T, AppError]]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Result[T, AppError]:
            try:
                result = await fn(*args, **kwargs)
            except Exception as e:
                return Err(mapper.map_exception(e))
            return mapper.map_result(result)
        return wrapper
    return decorator


def map_db_errors(origin: str = "database"):
    """Convenience decorator for database error mapping."""
    return map_errors(DatabaseErrorMapper(origin))
