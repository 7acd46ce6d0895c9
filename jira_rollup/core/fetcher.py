"""Batched, bounded-concurrency retrieval of paginated result sets.

Jira search endpoints are rate limited, so pages beyond the first are
requested in small concurrent batches with a short pause between batches.
The jira client is synchronous, hence threads (I/O bound HTTP calls).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, TypeVar

from .config import INTER_BATCH_DELAY_SECONDS
from .errors import ConfigurationError, RetrievalFailure
from .models import Page

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

PageFetcher = Callable[[int, int], Page]
ProgressCallback = Callable[[str, int | None, int | None], None]


class _Deadline:
    def __init__(self, timeout: float | None):
        self._expires = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> float | None:
        if self._expires is None:
            return None
        return max(0.0, self._expires - time.monotonic())


def _join(futures: Sequence[Future], deadline: _Deadline, what: str, offsets: Sequence[int] | None = None) -> list:
    """Wait for a whole batch and return results in submission order.

    The first failure (or the deadline) aborts the batch: pending futures are
    cancelled and a RetrievalFailure is raised.
    """
    done, pending = wait(futures, timeout=deadline.remaining(), return_when=FIRST_EXCEPTION)
    for index, fut in enumerate(futures):
        if fut in done and fut.exception() is not None:
            for other in pending:
                other.cancel()
            exc = fut.exception()
            offset = offsets[index] if offsets is not None else None
            if isinstance(exc, RetrievalFailure):
                if exc.offset is None:
                    exc.offset = offset
                raise exc
            raise RetrievalFailure(f"{what} failed: {exc}", offset=offset) from exc
    if pending:
        for fut in pending:
            fut.cancel()
        raise RetrievalFailure(f"{what} timed out with {len(pending)} request(s) in flight")
    return [fut.result() for fut in futures]


def _validate(page_size: int, max_concurrent_batches: int) -> None:
    if page_size <= 0:
        raise ConfigurationError(f"page_size must be positive, got {page_size}")
    if max_concurrent_batches <= 0:
        raise ConfigurationError(f"max_concurrent_batches must be positive, got {max_concurrent_batches}")


def _run_pool(max_workers: int, body: Callable[[ThreadPoolExecutor], T]) -> T:
    # On failure or timeout, do not block on requests still in flight.
    pool = ThreadPoolExecutor(max_workers=max_workers)
    try:
        result = body(pool)
    except BaseException:
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown(wait=True)
    return result


def fetch_all_pages(
    fetch_page: PageFetcher,
    page_size: int,
    max_concurrent_batches: int,
    *,
    batch_delay: float = INTER_BATCH_DELAY_SECONDS,
    timeout: float | None = None,
    progress: ProgressCallback | None = None,
) -> list[Any]:
    """Retrieve every page of a result set in offset order.

    Parameters
    ----------
    fetch_page : callable
        ``fetch_page(offset, page_size) -> Page``. Must be idempotent.
    page_size : int
        Items requested per page.
    max_concurrent_batches : int
        Ceiling on requests in flight at once.
    batch_delay : float
        Seconds to sleep between consecutive batches.
    timeout : float, optional
        Deadline for the whole call. Expiry raises RetrievalFailure.
    progress : callback, optional
        Receives ``(message, pages_done, pages_total)``.

    Returns
    -------
    list
        Items of all pages, concatenated by offset. May be shorter than the
        reported total when upstream truncates pages.

    Raises
    ------
    RetrievalFailure
        If any single page request fails or the deadline passes.
    """
    _validate(page_size, max_concurrent_batches)
    deadline = _Deadline(timeout)

    def _collect(pool: ThreadPoolExecutor) -> list[Any]:
        (first,) = _join([pool.submit(fetch_page, 0, page_size)], deadline, "page at offset 0", [0])
        combined = list(first.items or [])
        total = int(first.total or 0)

        if len(combined) >= total or len(combined) < page_size:
            logger.info("Fetched %s/%s items (single page)", len(combined), total)
            if progress:
                progress("Fetched result set", 1, 1)
            return combined

        offsets = list(range(page_size, total, page_size))
        batches = [offsets[i : i + max_concurrent_batches] for i in range(0, len(offsets), max_concurrent_batches)]
        pages_total = len(offsets) + 1
        pages_done = 1
        if progress:
            progress("Fetching remaining pages", pages_done, pages_total)

        for index, batch in enumerate(batches):
            futures = [pool.submit(fetch_page, offset, page_size) for offset in batch]
            # Slots are filled by submission index; arrival order is irrelevant.
            results = _join(futures, deadline, f"page batch at offsets {batch[0]}-{batch[-1]}", batch)
            for offset, page in zip(batch, results):
                items = list(page.items or [])
                logger.debug("Page at offset %s returned %s items", offset, len(items))
                combined.extend(items)
            pages_done += len(batch)
            if progress:
                progress("Fetching remaining pages", pages_done, pages_total)
            if index < len(batches) - 1 and batch_delay > 0:
                time.sleep(batch_delay)

        logger.info("Fetched %s/%s items (%s pages, parallel)", len(combined), total, pages_total)
        return combined

    return _run_pool(max_concurrent_batches, _collect)


def fetch_in_batches(
    keys: Sequence[K],
    fetch_one: Callable[[K], T],
    batch_size: int,
    *,
    batch_delay: float = INTER_BATCH_DELAY_SECONDS,
    timeout: float | None = None,
    progress: ProgressCallback | None = None,
) -> dict[K, T]:
    """Run ``fetch_one`` for every key, ``batch_size`` requests at a time.

    Same join-then-append discipline as :func:`fetch_all_pages`; the returned
    mapping preserves the order of ``keys``. Duplicate keys are fetched once.
    """
    _validate(1, batch_size)
    unique = list(dict.fromkeys(keys))
    if not unique:
        return {}
    deadline = _Deadline(timeout)

    def _collect(pool: ThreadPoolExecutor) -> dict[K, T]:
        out: dict[K, T] = {}
        for start in range(0, len(unique), batch_size):
            batch = unique[start : start + batch_size]
            futures = [pool.submit(fetch_one, key) for key in batch]
            results = _join(futures, deadline, f"batch starting at {batch[0]!r}")
            out.update(zip(batch, results))
            if progress:
                progress("Fetching per-issue data", len(out), len(unique))
            if start + batch_size < len(unique) and batch_delay > 0:
                time.sleep(batch_delay)
        return out

    return _run_pool(batch_size, _collect)
