"""
Chunked, concurrency-bounded resolution of many roster rows.

Rows are split into consecutive chunks of ``concurrency`` rows. A chunk's rows
are resolved concurrently and the whole chunk is awaited before the next one
starts, so no more than ``concurrency`` rows are ever in flight. Cancellation
is only honoured at chunk boundaries.
"""

import asyncio
import threading
from typing import Callable, List, Optional, Sequence, Union

from .logger import get_logger
from .resolver import Resolver
from .schema import Provenance, Resolution, Row

ProgressCallback = Callable[[int, Resolution], None]
CancelEvent = Union[asyncio.Event, threading.Event]


def chunked(items: Sequence, size: int) -> List[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def _dispatch(
    position: int,
    row: Row,
    resolver: Resolver,
    force_refresh: bool,
    on_progress: Optional[ProgressCallback],
) -> None:
    logger = get_logger()
    if not row.has_name_pair:
        # Nothing to look up; the row is already resolved to nothing.
        resolution = Resolution.empty(Provenance.NONE)
    else:
        try:
            resolution = await resolver.resolve(row.last_name, row.first_name, force_refresh)
        except Exception as e:
            logger.error("Row resolution failed", row=row.index, term=row.search_term, error=str(e))
            resolution = Resolution.empty(Provenance.ERROR)

    row.resolution = resolution
    if on_progress is not None:
        try:
            on_progress(position, resolution)
        except Exception as e:
            logger.error("Progress callback failed", row=row.index, error=str(e))


async def run_batch(
    rows: List[Row],
    resolver: Resolver,
    concurrency: int = 4,
    force_refresh: bool = False,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelEvent] = None,
) -> List[Row]:
    """
    Resolve every row, reporting each one through ``on_progress`` as it completes.

    Args:
        rows: Rows to resolve, in input order
        resolver: Resolver shared by all rows
        concurrency: Rows resolved at once (chunk size)
        force_refresh: Skip the cache for every row
        on_progress: Called with (position in ``rows``, resolution) per finished row
        cancel: Event checked between chunks; once set no further chunk starts

    Returns:
        The same rows in input order. Rows never dispatched because of
        cancellation keep ``resolution=None``.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    logger = get_logger()
    for row in rows:
        row.resolution = None

    positions = list(range(len(rows)))
    for chunk_no, chunk in enumerate(chunked(positions, concurrency)):
        if cancel is not None and cancel.is_set():
            logger.info("Batch cancelled", completed_chunks=chunk_no, remaining_rows=len(rows) - chunk[0])
            break
        await asyncio.gather(*(
            _dispatch(pos, rows[pos], resolver, force_refresh, on_progress) for pos in chunk
        ))

    resolved = sum(1 for r in rows if r.resolution is not None and r.resolution.candidates)
    logger.info("Batch finished", rows=len(rows), matched=resolved, concurrency=concurrency)
    return rows
