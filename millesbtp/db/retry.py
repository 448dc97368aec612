"""Storage error translation and retry policy.

SQLAlchemy exceptions are mapped onto the core taxonomy at this boundary:
connection/operational failures become TransientStorageError, permission
failures become StoragePermissionError, and ORM version conflicts become
StaleDerivationWarning. Only the transient and stale errors are retried.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from millesbtp.config import StorageRetryConfig, get_config
from millesbtp.errors import (
    StaleDerivationWarning,
    StoragePermissionError,
    TransientStorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# PostgreSQL insufficient_privilege / invalid authorization, PostgREST JWT failure
PERMISSION_ERROR_CODES = frozenset({"42501", "28000", "28P01", "PGRST301"})
# numeric_value_out_of_range
OUT_OF_RANGE_ERROR_CODES = frozenset({"22003"})

RETRYABLE_ERRORS = (TransientStorageError, StaleDerivationWarning)

T = TypeVar("T")


def _error_code(exc: DBAPIError) -> str | None:
    orig = exc.orig
    if orig is None:
        return None
    for attr in ("pgcode", "sqlstate", "code"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


@contextmanager
def translate_storage_errors(worksite_id: object = None) -> Iterator[None]:
    """Re-raise SQLAlchemy errors as core storage errors."""
    try:
        yield
    except StaleDataError as exc:
        raise StaleDerivationWarning(worksite_id) from exc
    except DBAPIError as exc:
        code = _error_code(exc)
        if code in PERMISSION_ERROR_CODES:
            raise StoragePermissionError(str(exc.orig)) from exc
        if code in OUT_OF_RANGE_ERROR_CODES:
            raise ValidationError(f"Value out of range: {exc.orig}") from exc
        if isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated:
            raise TransientStorageError(str(exc.orig)) from exc
        raise


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Storage attempt %d failed: %r, retrying", retry_state.attempt_number, exc)


def storage_retrying(config: StorageRetryConfig | None = None) -> AsyncRetrying:
    """Build the retry controller for one unit of work.

    Usage:
        async for attempt in storage_retrying():
            with attempt:
                ...
    """
    config = config or get_config().retry
    return AsyncRetrying(
        stop=stop_after_attempt(config.attempts),
        wait=wait_exponential(
            multiplier=config.base_delay_seconds,
            max=config.max_delay_seconds,
        ),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )


async def run_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    worksite_id: object = None,
    config: StorageRetryConfig | None = None,
) -> T:
    """Run `operation` in its own transaction, retrying the whole unit.

    Each attempt gets a fresh session. The session is committed when the
    operation returns and rolled back on any error.
    """
    async for attempt in storage_retrying(config):
        with attempt:
            async with session_factory() as session:
                with translate_storage_errors(worksite_id):
                    try:
                        result = await operation(session)
                        await session.commit()
                    except Exception:
                        await session.rollback()
                        raise
    return result
