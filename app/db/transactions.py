from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import get_settings
from app.db.session import SessionLocal

T = TypeVar("T")

logger = structlog.get_logger(__name__)

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
RETRY_BASE_DELAY_SECONDS = 0.02
RETRY_MAX_DELAY_SECONDS = 0.5


class TransactionRetryExhaustedError(Exception):
    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"{operation} conflicted {attempts} times")
        self.operation = operation
        self.attempts = attempts


def _sqlstate_of(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        sqlstate = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if sqlstate:
            return str(sqlstate)
    return None


def is_transient_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        return _sqlstate_of(exc) in TRANSIENT_SQLSTATES
    return False


def _retry_delay_seconds(attempt: int) -> float:
    ceiling = min(RETRY_MAX_DELAY_SECONDS, RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1)))
    return ceiling * random.uniform(0.5, 1.0)


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int | None = None,
) -> T:
    """Run ``work`` inside one database transaction, retrying on write conflicts.

    ``work`` must be safe to re-run from scratch: everything it reads and
    writes goes through the session it is handed, and the whole
    read-compute-write cycle is repeated after a rollback.
    """
    resolved_attempts = max(1, int(max_attempts or get_settings().pvp_transaction_max_attempts))
    attempt = 0
    while True:
        attempt += 1
        try:
            async with SessionLocal.begin() as session:
                return await work(session)
        except (StaleDataError, DBAPIError) as exc:
            if not is_transient_conflict(exc):
                raise
            if attempt >= resolved_attempts:
                logger.warning(
                    "store_transaction_retries_exhausted",
                    operation=operation,
                    attempts=attempt,
                )
                raise TransactionRetryExhaustedError(operation, attempt) from exc
            logger.info(
                "store_transaction_retry",
                operation=operation,
                attempt=attempt,
                error_type=type(exc).__name__,
            )
            await asyncio.sleep(_retry_delay_seconds(attempt))
