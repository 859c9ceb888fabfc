"""Error kinds raised by the ODP stores.

Domain errors (NotFoundError, ConflictError, ValidationError) describe a
request the store refused. StoreFault wraps an unexpected storage failure
together with the operation that was running. The edge layer maps each kind
to its own outward signal, so stores never re-wrap a domain error.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("odp-core.errors")


class ODPError(Exception):
    """Base class for every error raised by ODP Core."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ODPError):
    """An item, version, baseline, edition, wave or milestone does not exist."""


class ConflictError(ODPError):
    """The caller's expected version is not the item's current latest version."""

    def __init__(self, message: str, expected_version_id: Optional[int] = None,
                 current_version_id: Optional[int] = None):
        self.expected_version_id = expected_version_id
        self.current_version_id = current_version_id
        super().__init__(message)


class ValidationError(ODPError, ValueError):
    """The request is malformed or references something that does not exist."""


class ImmutableEntityError(ValidationError):
    """A baseline or edition was asked to change."""

    def __init__(self, entity: str, operation: str):
        self.entity = entity
        self.operation = operation
        super().__init__(f"{entity} are immutable - {operation} operation not supported")


class StoreFault(ODPError):
    """Unexpected failure from the storage layer."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Failed to {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DataIntegrityError(StoreFault):
    """Stored data violates an invariant, e.g. an item without versions."""

    def __init__(self, message: str):
        self.operation = "read consistent data"
        self.cause = None
        ODPError.__init__(self, f"Data integrity error: {message}")


@contextmanager
def storage_errors(operation: str):
    """
    Re-raise storage failures as StoreFault carrying ``operation``.

    ODPError subclasses pass through untouched.

    Usage:
        with storage_errors("create operational requirement"):
            ...
    """
    try:
        yield
    except ODPError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Failed to {operation}: {e}", exc_info=True)
        raise StoreFault(operation, e) from e
