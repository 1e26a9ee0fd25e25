from contextlib import contextmanager
import logging

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import DatabaseError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationError",
    "UnbalancedVoucherError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "storage_errors",
]


class UnbalancedVoucherError(ValidationError):
    """Raised when a voucher fails the double-entry balance check."""
    pass


class NotFoundError(ObjectDoesNotExist):
    """Raised when a referenced record does not exist for the tenant."""
    pass


class ConflictError(Exception):
    """Raised when a concurrent modification aborted the storage transaction.

    The whole operation must be retried by the caller.
    """
    pass


class StorageError(Exception):
    """Storage-layer failure re-raised with the operation that triggered it."""
    pass


@contextmanager
def storage_errors(operation):
    """
    Translate database failures into engine errors.

    Wrap it *around* transaction.atomic() so the rollback
    has already happened when the translated error surfaces:

        with storage_errors("create voucher"), transaction.atomic():
            ...
    """
    try:
        yield
    except (OperationalError, IntegrityError) as exc:
        logger.warning("Conflict while trying to %s: %s", operation, exc)
        raise ConflictError(f"Failed to {operation}: {exc}") from exc
    except DatabaseError as exc:
        logger.exception("Storage failure while trying to %s", operation)
        raise StorageError(f"Failed to {operation}: {exc}") from exc
