"""Error codes and the exceptions raised by the breeding-management services."""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Numeric status codes shared by every service."""

    OK = 0
    ERROR = -1
    MEMORY = -2
    INVALID_PARAM = -3
    NOT_FOUND = -4
    TIMEOUT = -5
    STORAGE = -6
    NETWORK = -7


class LizardError(Exception):
    """Base class of every error raised by the package."""

    code: ErrorCode = ErrorCode.ERROR


class OutOfCapacityError(LizardError):
    """A fixed-size store has no room left."""

    code = ErrorCode.MEMORY


class InvalidParameterError(LizardError, ValueError):
    """An argument is missing, out of range or malformed."""

    code = ErrorCode.INVALID_PARAM


class NotFoundError(LizardError, LookupError):
    """No record carries the requested identifier."""

    code = ErrorCode.NOT_FOUND


class OperationTimeoutError(LizardError, TimeoutError):
    """An operation did not complete in time."""

    code = ErrorCode.TIMEOUT


class StorageError(LizardError):
    """Persistent storage could not be read or written."""

    code = ErrorCode.STORAGE


class NetworkError(LizardError):
    """The network layer failed."""

    code = ErrorCode.NETWORK


class InsufficientStockError(LizardError):
    """More stock was requested than is available."""

    code = ErrorCode.ERROR