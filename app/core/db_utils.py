"""
Database utilities for bounded store access and error translation
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, DBAPIError

from app.core.config import settings
from app.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

# Define a type variable for the return type of the decorated function
T = TypeVar('T')

# Driver-level errors that mean the store could not complete the operation
_CONNECTION_ERRORS = (
    "ConnectionError",
    "ConnectionDoesNotExistError",
    "ConnectionRefusedError",
    "InterfaceError",
)


async def bounded(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await a store operation, surfacing timeouts and connection failures as StoreUnavailable."""
    limit = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError:
        logger.error(f"Store operation timed out after {limit:.1f}s")
        raise StoreUnavailable(f"Store operation timed out after {limit:.1f}s")
    except IntegrityError as e:
        # Unique (parent_transaction_id, transaction_type) or FK violations land here
        logger.error(f"Store rejected write set: {str(e.orig)}")
        raise StoreUnavailable("Conflicting concurrent write; no changes were applied")
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Store error: {str(e)}")
        raise StoreUnavailable("Transaction store is unavailable")
    except Exception as e:
        if any(err in type(e).__name__ for err in _CONNECTION_ERRORS):
            logger.error(f"Store connection error: {str(e)}")
            raise StoreUnavailable("Transaction store is unavailable")
        raise
