"""
Base Service.

Services own business rules and translate database failures into
application errors. They never commit on their own behalf except where a
caller outside the request cycle needs the row visible (see DispatchService).

Database failures map as follows:

    unique violation on notifications.job_id   ConflictError  NOTIF_DUPLICATE_JOB
    other unique violation                     ConflictError  RES_CONFLICT
    other integrity error                      DatabaseError
    anything else from SQLAlchemy              DatabaseError  (retryable for job processors)
"""

from collections.abc import Awaitable
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modules.notifier.core.exceptions import ConflictError, DatabaseError, ValidationError
from modules.notifier.core.logging import get_logger

T = TypeVar("T")


def _is_unique_violation(error: IntegrityError) -> bool:
    text = str(error.orig).lower()
    return "unique" in text or "duplicate" in text


class BaseService:
    """Session holder with error translation and structured operation logs."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._logger = get_logger(self.__class__.__module__)

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _execute_db_operation(self, operation: str, coro: Awaitable[T]) -> T:
        """
        Await a repository call, translating SQLAlchemy errors.

        Raises:
            ConflictError: unique constraint violated
            DatabaseError: any other database failure
        """
        try:
            return await coro
        except IntegrityError as e:
            self._logger.warning(
                "Database integrity error",
                extra={"operation": operation, "error": str(e.orig)},
            )
            if not _is_unique_violation(e):
                raise DatabaseError(f"Database constraint violation: {operation}") from e
            if "job_id" in str(e.orig).lower():
                raise ConflictError("A notification already exists for this job", code="NOTIF_DUPLICATE_JOB") from e
            raise ConflictError("Resource already exists") from e
        except SQLAlchemyError as e:
            self._logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Database operation failed: {operation}") from e

    def _validate_required(self, fields: dict[str, Any], field_names: list[str]) -> None:
        """Reject None and blank strings. Raises ValidationError listing every missing field."""
        missing = [
            name
            for name in field_names
            if fields.get(name) is None or (isinstance(fields[name], str) and not fields[name].strip())
        ]
        if missing:
            raise ValidationError("Required fields missing", details={"missing_fields": missing})

    def _log_operation(self, message: str, **context: Any) -> None:
        self._logger.info(message, extra={"service": self.__class__.__name__, **context})

    def _log_debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, extra={"service": self.__class__.__name__, **context})
