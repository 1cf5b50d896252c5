# Hey future me - these are THE TOOLS for big catalog writes!
#
# A full rescan can touch hundreds of thousands of paths. One giant IN (...) list blows past
# parameter limits and holds the write lock forever; one statement per path takes ages.
# SOLUTION: fixed-size chunks, each its own statement, summed and CHECKED at the end.
#
# GOLDEN RULE: a chunked write that affects fewer rows than requested is a BUG in the input
# (duplicates, unknown paths). ensure_batch_total() raises - never "log and move on".
"""Chunked batch utilities for large catalog writes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from mediacatalog.domain.exceptions import BatchSizeMismatchError, ValidationException

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], chunk_size: int) -> list[Sequence[T]]:
    """Split items into consecutive slices of at most chunk_size.

    Example:
        chunked(range(45000), 30000) -> [range(0, 30000), range(30000, 45000)]
    """
    if chunk_size < 1:
        raise ValidationException(f"chunk_size must be >= 1, got {chunk_size}")
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


@dataclass(frozen=True)
class ChunkedResult:
    """Aggregated outcome of a chunked operation."""

    chunks: int
    affected: int


async def run_chunked(
    items: Sequence[T],
    chunk_size: int,
    worker: Callable[[Sequence[T]], Awaitable[int]],
    max_concurrency: int = 1,
) -> ChunkedResult:
    """Run worker over chunks of items and sum the affected-row counts.

    Hey future me - with max_concurrency > 1 chunks run concurrently, so the worker MUST NOT
    share an AsyncSession between calls (a session can't run two statements at once). Give
    each chunk its own session (see PresenceReconciler.mark_present). The first failing chunk
    propagates its exception unchanged and cancels the chunks still running; chunks that
    already committed stay committed - re-running the whole operation is the recovery path.

    Args:
        items: Items to process
        chunk_size: Maximum items per worker call
        worker: Async callable receiving one chunk, returning affected rows
        max_concurrency: How many chunks may run at the same time

    Returns:
        ChunkedResult with number of chunks and summed affected rows
    """
    if max_concurrency < 1:
        raise ValidationException(
            f"max_concurrency must be >= 1, got {max_concurrency}"
        )

    chunks = chunked(items, chunk_size)
    if not chunks:
        return ChunkedResult(chunks=0, affected=0)

    if max_concurrency == 1 or len(chunks) == 1:
        affected = 0
        for chunk in chunks:
            affected += await worker(chunk)
        return ChunkedResult(chunks=len(chunks), affected=affected)

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _guarded(chunk: Sequence[T]) -> int:
        async with semaphore:
            return await worker(chunk)

    tasks = [asyncio.ensure_future(_guarded(chunk)) for chunk in chunks]
    try:
        counts = await asyncio.gather(*tasks)
    except BaseException:
        # Siblings of a failed chunk must not keep writing after the caller saw the error
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return ChunkedResult(chunks=len(chunks), affected=sum(counts))


def ensure_unique_items(operation: str, items: Sequence[Any]) -> None:
    """Raise if items contain duplicates.

    A duplicate split across two chunks updates its row once per chunk, so the summed count
    alone can't catch it.

    Raises:
        BatchSizeMismatchError: With expected=len(items), actual=number of distinct items
    """
    distinct = len(set(items))
    if distinct != len(items):
        logger.error(
            "%s got %d items, only %d distinct", operation, len(items), distinct
        )
        raise BatchSizeMismatchError(operation, len(items), distinct)


def ensure_batch_total(operation: str, expected: int, actual: int) -> None:
    """Raise if a chunked operation affected a different number of rows than expected.

    Raises:
        BatchSizeMismatchError: If expected != actual
    """
    if expected != actual:
        logger.error(
            "%s affected %d rows, expected %d", operation, actual, expected
        )
        raise BatchSizeMismatchError(operation, expected, actual)


class IncrementalCommitter:
    """Context manager for incremental commits during long operations.

    Hey future me - use this when a scan upserts thousands of files through ONE session!
    Committing every N items releases the SQLite write lock between batches, and a crash mid
    scan loses at most N upserts (re-scanning is the recovery path anyway).

    Example:
        async with IncrementalCommitter(session, commit_every=200) as committer:
            for file in files:
                await repo.create_or_update(file)
                await committer.mark_progress()  # Commits every 200 items
    """

    def __init__(
        self,
        session: AsyncSession,
        commit_every: int = 200,
    ) -> None:
        """Initialize the committer.

        Args:
            session: Database session
            commit_every: Commit after this many mark_progress() calls
        """
        self._session = session
        self._commit_every = commit_every
        self._count = 0
        self._commit_count = 0

    async def __aenter__(self) -> IncrementalCommitter:
        """Enter context."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - commit any remaining changes."""
        if exc_type is None and self._count > 0:
            try:
                await self._session.commit()
                self._commit_count += 1
                self._count = 0
            except Exception as e:
                logger.error("Final commit failed: %s", e)
                await self._session.rollback()
                raise

    async def mark_progress(self) -> None:
        """Mark progress and possibly commit.

        Call this after each item in your loop. Commits will happen
        automatically every `commit_every` calls.
        """
        self._count += 1

        if self._count >= self._commit_every:
            await self._session.commit()
            self._commit_count += 1
            self._count = 0

    @property
    def commits_made(self) -> int:
        """Get total commits made so far."""
        return self._commit_count
