"""Error taxonomy for provisioning and discovery.

Every failure surfaced by the orchestration layer carries an ErrorCode so the
calling API layer can map it to a response without string matching:
  VALIDATION_FAILED  bad table name, bad crew type, bad input       (400)
  NOT_FOUND family   missing client / crew                          (404)
  CONFLICT           unique constraint violation                    (409)
  DATABASE_ERROR     connection loss, failed statement              (500)
  INTERNAL_ERROR     anything else                                  (500)
"""
from enum import Enum
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

UNIQUE_VIOLATION = "23505"


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    CREW_NOT_FOUND = "CREW_NOT_FOUND"
    CONFLICT = "CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CLIENT_NOT_FOUND: 404,
    ErrorCode.CREW_NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class PlatformError(Exception):
    """Base class for errors raised by this package."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, code: Optional[ErrorCode] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def status(self) -> int:
        return self.code.status


class TableNameError(PlatformError, ValueError):
    """A dynamic table name failed length or pattern validation."""

    code = ErrorCode.VALIDATION_FAILED


class InvalidCrewTypeError(PlatformError, ValueError):
    code = ErrorCode.VALIDATION_FAILED


class ClientNotFoundError(PlatformError):
    code = ErrorCode.CLIENT_NOT_FOUND


class CrewNotFoundError(PlatformError):
    code = ErrorCode.CREW_NOT_FOUND


class ProvisioningError(PlatformError):
    """Crew provisioning failed; __cause__ holds the original error."""


class DeprovisioningError(PlatformError):
    """Crew deprovisioning failed; __cause__ holds the original error."""


def is_unique_violation(exc: BaseException) -> bool:
    """Return True if exc is a unique-constraint violation (SQLSTATE 23505)."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is None:
        # asyncpg nests the server error one level deeper
        sqlstate = getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    return sqlstate == UNIQUE_VIOLATION


def classify_error(exc: BaseException) -> ErrorCode:
    """Map any exception onto one of the caller-facing error buckets."""
    if isinstance(exc, PlatformError):
        return exc.code
    if isinstance(exc, PydanticValidationError):
        return ErrorCode.VALIDATION_FAILED
    if is_unique_violation(exc):
        return ErrorCode.CONFLICT
    if isinstance(exc, SQLAlchemyError):
        return ErrorCode.DATABASE_ERROR
    return ErrorCode.INTERNAL_ERROR


def describe(exc: BaseException) -> str:
    """Human-readable cause used when wrapping errors."""
    if isinstance(exc, PlatformError):
        return exc.message
    return str(exc) or exc.__class__.__name__
