"""
Dual-store facade over the authoritative database and the mirror ledger.

Write path: the authoritative write runs and commits first and its failure
aborts the operation; the mirror write is attempted afterwards and any
failure is logged, never raised.

Read path: the authoritative query runs first; if it errors or comes back
empty, the same answer is rebuilt from the mirror. Callers supply both
halves, and are responsible for making them return the same shape.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldserve.config import get_settings
from fieldserve.errors import DispatchError, MirrorStoreError, UpstreamStoreError
from fieldserve.services.mirror import MirrorStore

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

# Failures of the authoritative store that are not domain decisions
STORE_ERRORS = (SQLAlchemyError, TimeoutError, OSError)


def _is_empty(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, (list, tuple, dict, set)):
        return len(result) == 0
    return False


class DualStore:
    """
    Replicated repository: one authoritative session plus the mirror.

    Built per request-handling invocation; holds no state between calls.
    """

    def __init__(
        self,
        db: AsyncSession,
        mirror: MirrorStore,
        timeout: float | None = None,
    ):
        self.db = db
        self.mirror = mirror
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")

    async def write(
        self,
        primary: Callable[[], Awaitable[T]],
        replica: Callable[[MirrorStore, T], Awaitable[None]] | None = None,
        *,
        label: str,
    ) -> T:
        """
        Run ``primary`` against the authoritative session and commit, then
        replicate its result to the mirror with ``replica(mirror, result)``.

        Domain errors raised by ``primary`` roll back and propagate unchanged.
        Store failures roll back and become ``UpstreamStoreError``.
        """
        try:
            result = await asyncio.wait_for(primary(), self.timeout)
            await asyncio.wait_for(self.db.commit(), self.timeout)
        except DispatchError:
            await self._rollback()
            raise
        except STORE_ERRORS as e:
            await self._rollback()
            logger.error(f"Authoritative write failed ({label}): {e}")
            raise UpstreamStoreError(f"Failed to {label}") from e

        if replica is not None:
            await self.replicate(lambda mirror: replica(mirror, result), label=label)

        return result

    async def replicate(
        self,
        replica: Callable[[MirrorStore], Awaitable[None]],
        *,
        label: str,
    ) -> bool:
        """Best-effort mirror write. Returns whether it succeeded."""
        if not self.mirror.enabled:
            return False
        try:
            await asyncio.wait_for(replica(self.mirror), self.timeout)
            return True
        except Exception as e:
            # Mirror failures never reach the caller
            logger.warning(f"Mirror write failed ({label}): {e}")
            return False

    async def read(
        self,
        primary: Callable[[], Awaitable[T]],
        fallback: Callable[[MirrorStore], Awaitable[T]],
        *,
        label: str,
    ) -> T:
        """
        Answer from the authoritative store, else rebuild from the mirror.

        Falls back when ``primary`` raises a store error or returns an empty
        value (None or an empty collection). If the authoritative store
        failed and the mirror fails too, raises ``UpstreamStoreError``; if
        the authoritative answer was merely empty, a mirror failure leaves
        that empty answer in place.
        """
        try:
            result = await asyncio.wait_for(primary(), self.timeout)
        except STORE_ERRORS as e:
            await self._rollback()
            logger.warning(f"Authoritative read failed ({label}): {e}; using mirror")
            try:
                return await self._fallback(fallback)
            except Exception as mirror_error:
                logger.error(f"Mirror read failed ({label}): {mirror_error}")
                raise UpstreamStoreError(f"Failed to {label}") from mirror_error

        if not _is_empty(result):
            return result

        try:
            return await self._fallback(fallback)
        except Exception as e:
            logger.warning(f"Mirror read failed ({label}): {e}")
            return result

    async def _fallback(self, fallback: Callable[[MirrorStore], Awaitable[T]]) -> T:
        if not self.mirror.enabled:
            raise MirrorStoreError("Mirror store disabled")
        return await asyncio.wait_for(fallback(self.mirror), self.timeout)
