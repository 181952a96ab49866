"""
Structured logging for fidematch.

One process-wide logger writes human-readable lines to stderr (so roster
output piped from stdout stays clean) and a full DEBUG trail to a dated file
under the log directory. Keyword context is appended to each message as JSON.
The logger also keeps run counters for registry lookups, cache reads and the
search strategy that produced each resolution.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    return handler


def _rate(numerator: int, denominator: int) -> Optional[float]:
    return round(numerator / denominator, 3) if denominator else None


class StructuredLogger:
    """Logger with console and file outputs plus lookup/cache counters."""

    def __init__(
        self,
        name: str = "fidematch",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for dated log files (default: logs/)
            enable_file: Write a DEBUG-level log file
            enable_console: Echo to stderr at ``level``
        """
        console_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(console_level)
        self.logger.handlers.clear()
        self.logger.propagate = False
        self._lock = threading.Lock()

        self.metrics = {
            "lookups_attempted": 0,
            "lookups_successful": 0,
            "lookups_failed": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "errors_by_type": {},
            "strategy_counts": {},
        }

        if enable_console:
            self.logger.addHandler(_handler(logging.StreamHandler(sys.stderr), console_level, CONSOLE_FORMAT))

        if enable_file:
            log_dir = log_dir or Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"fidematch_{datetime.now():%Y%m%d}.log"
            # The file gets everything; the logger level still gates what reaches it
            self.logger.addHandler(
                _handler(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, FILE_FORMAT)
            )

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    # Counters. Registry fetches record from worker threads, so updates hold the lock.

    def _count(self, counter: Optional[str], table: Optional[str] = None, key: Optional[str] = None):
        with self._lock:
            if counter is not None:
                self.metrics[counter] += 1
            if table is not None:
                counts = self.metrics[table]
                counts[key] = counts.get(key, 0) + 1

    def record_lookup_attempt(self):
        self._count("lookups_attempted")

    def record_lookup_success(self):
        self._count("lookups_successful")

    def record_lookup_failure(self, error_type: str):
        """Count a failed registry request under its error type."""
        self._count("lookups_failed", "errors_by_type", error_type)

    def record_cache_hit(self):
        self._count("cache_hits")

    def record_cache_miss(self):
        self._count("cache_misses")

    def record_strategy(self, strategy: str):
        """Count which search strategy produced a resolution."""
        self._count(None, "strategy_counts", strategy)

    def get_metrics(self) -> dict:
        """Counters plus derived rates; a rate is omitted until it has a denominator."""
        with self._lock:
            snapshot = {k: dict(v) if isinstance(v, dict) else v for k, v in self.metrics.items()}
        rates = {
            "lookup_success_rate": _rate(snapshot["lookups_successful"], snapshot["lookups_attempted"]),
            "cache_hit_rate": _rate(snapshot["cache_hits"], snapshot["cache_hits"] + snapshot["cache_misses"]),
        }
        snapshot.update({k: v for k, v in rates.items() if v is not None})
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()
        attempts = m["lookups_attempted"]
        percent = round(m["lookups_successful"] / attempts * 100, 1) if attempts else 0

        self.info("=== Resolution Session Metrics ===")
        self.info(f"Lookups: {m['lookups_successful']}/{attempts} ({percent}% success)")
        self.info(f"Cache: {m['cache_hits']} hits, {m['cache_misses']} misses")
        for title, table in (("Search strategies:", "strategy_counts"), ("Error Types:", "errors_by_type")):
            if m[table]:
                self.info(title)
                for key, count in m[table].items():
                    self.info(f"  {key}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "fidematch", level: str = "INFO", **kwargs) -> StructuredLogger:
    """
    Return the process-wide logger, creating it on first use.

    Arguments only take effect on the call that creates it.
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Drop the process-wide logger so the next get_logger builds a fresh one."""
    global _global_logger
    _global_logger = None
