"""
Transaction runner with bounded retry on transient store conflicts.

run_in_transaction() is the only way booking operations touch the database:
1. Open a fresh AsyncSession and BEGIN
2. Run the unit of work (reads establish the snapshot, writes are buffered)
3. COMMIT, or ROLLBACK everything on any exception

Transient failures (serialization failures, deadlocks, dropped connections,
concurrent creation of the same row) restart the unit of work from step 1, so
every precondition is re-checked against a fresh snapshot. Business faults
(BookingError) are never retried: they are the caller's to act on.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from database.connection import get_async_session
from shared.config import get_settings
from shared.errors import BookingError, InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs the database raises when a concurrent transaction won the race
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


class StoreConflictError(Exception):
    """A concurrent transaction created a row this one expected to create."""


def is_transient_store_error(error: BaseException) -> bool:
    """
    Determine if a store error is worth retrying on a fresh snapshot.

    Retryable errors:
    - StoreConflictError raised by the stores
    - SQLSTATE 40001 (serialization failure) / 40P01 (deadlock detected)
    - Invalidated connections (server restart, network drop)
    - SQLite "database is locked"
    """
    if isinstance(error, BookingError):
        return False

    if isinstance(error, StoreConflictError):
        return True

    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True

        orig = error.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in TRANSIENT_SQLSTATES:
            return True

        return "database is locked" in str(orig).lower()

    return False


def _log_retry(operation: str, trace_id: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"[{trace_id}] Transient store conflict in {operation}, retrying: {error}",
            extra={"attempt": retry_state.attempt_number},
        )

    return before_sleep


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    trace_id: str,
) -> T:
    """
    Execute work(session) as one atomic unit.

    Args:
        work: Coroutine function receiving the transaction's session. It must
            do all reads and writes through that session and must be safe to
            run more than once.
        operation: Operation name for logs
        trace_id: Correlation id for logs

    Returns:
        Whatever work() returns, after a successful commit

    Raises:
        BookingError: business fault raised by work() (nothing committed)
        InternalError: store failure, exhausted retries or timeout (nothing committed)
    """
    settings = get_settings()

    async def attempt_once() -> T:
        async with asyncio.timeout(settings.TRANSACTION_TIMEOUT_SECONDS):
            async with get_async_session() as session:
                async with session.begin():
                    return await work(session)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.TRANSACTION_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=settings.TRANSACTION_RETRY_INITIAL_DELAY,
            max=settings.TRANSACTION_RETRY_MAX_DELAY,
        ),
        retry=retry_if_exception(is_transient_store_error),
        before_sleep=_log_retry(operation, trace_id),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await attempt_once()

    except BookingError:
        raise

    except TimeoutError as e:
        logger.error(
            f"[{trace_id}] {operation} timed out after {settings.TRANSACTION_TIMEOUT_SECONDS}s",
            extra={"error_code": InternalError.error_code},
        )
        raise InternalError(
            "The operation timed out and was not applied. Please try again.",
            {"reason": "timeout", "operation": operation},
        ) from e

    except (SQLAlchemyError, StoreConflictError) as e:
        logger.error(
            f"[{trace_id}] Store failure in {operation}: {e}",
            extra={"error_code": InternalError.error_code},
            exc_info=True,
        )
        raise InternalError(
            "Unexpected storage error. Please try again.",
            {"reason": "store_error", "operation": operation, "error": type(e).__name__},
        ) from e

    raise InternalError("Transaction finished without a result", {"operation": operation})
