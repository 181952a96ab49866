"""
Cleanup module for removing stale cache entries.

Cache entries are keyed by the month they were written in; anything from an
earlier month is never served again and only takes up space. Denylist entries
are permanent and are left alone.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .storage import MatchStore, SqlKeyValueStore, StorageError
from .logger import get_logger


def cleanup_stale_entries(db_path: Path, now: Optional[datetime] = None) -> Tuple[int, int]:
    """
    Remove cache entries that were not written in the current month.

    Args:
        db_path: Path to the SQLite store
        now: Reference time (default: current time)

    Returns:
        Tuple of (cache_entries_before, cache_entries_after)
        Difference = entries_removed
    """
    logger = get_logger()
    if not db_path.exists():
        logger.info("No store to clean", path=str(db_path))
        return (0, 0)

    try:
        store = MatchStore(SqlKeyValueStore(db_path), logger=logger)
    except StorageError as e:
        logger.error(f"Cleanup failed: {e}", path=str(db_path))
        return (0, 0)

    before = store.cache_size()
    store.purge_stale(now or datetime.now())
    after = store.cache_size()

    logger.info(
        f"Cleanup complete: {before - after} removed, {after} remaining",
        entries_before=before,
        entries_removed=before - after,
        entries_after=after,
    )
    return (before, after)
