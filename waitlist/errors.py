# waitlist/errors.py
import asyncio
from typing import Optional

import asyncpg


class WaitlistError(Exception):
    """Base class for every error raised by the waitlist core"""


class NotFoundError(WaitlistError):
    """Target row does not exist (or was soft-deleted)"""

    entity = "record"

    def __init__(self, identifier=None, message: Optional[str] = None):
        self.identifier = identifier
        if message is None:
            message = f"{self.entity} not found"
            if identifier is not None:
                message = f"{message}: {identifier}"
        super().__init__(message)


class BlastNotFoundError(NotFoundError):
    entity = "email blast"


class RecipientNotFoundError(NotFoundError):
    entity = "blast recipient"


class PriceNotFoundError(NotFoundError):
    entity = "price"


class AccountNotFoundError(NotFoundError):
    entity = "account"


class ValidationError(WaitlistError, ValueError):
    """Malformed or missing input, rejected before touching the store"""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InvalidStateTransition(WaitlistError):
    """The row exists but its current status does not allow the requested change"""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"cannot move email blast from '{current}' to '{target}'")


class DuplicateRecipientError(WaitlistError):
    def __init__(self, blast_id, user_id):
        self.blast_id = blast_id
        self.user_id = user_id
        super().__init__(f"user {user_id} is already a recipient of blast {blast_id}")


class StoreError(WaitlistError):
    """A database call failed; wraps the driver error with the operation name"""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"failed to {operation}: {cause}")


class TransientStoreError(StoreError):
    """Connection or timeout failure, safe to retry with backoff"""


TRANSIENT_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
    asyncpg.InterfaceError,
    asyncio.TimeoutError,
    OSError,
)


def wrap_store_error(operation: str, exc: Exception) -> StoreError:
    """Pick the store error kind for a driver exception"""
    if isinstance(exc, TRANSIENT_ERRORS):
        return TransientStoreError(operation, exc)
    return StoreError(operation, exc)
