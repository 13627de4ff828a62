"""
Timing utilities for pipeline stages.

Provides:
- A context manager that times and logs a named stage
- A per-run log of stage timings
- Progress tracking for iterative operations
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("meshmaker.utils.timing")


@dataclass
class TimingResult:
    """Result of a timed operation."""
    operation: str
    elapsed_seconds: float
    success: bool
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "OK" if self.success else "ERROR"
        return f"{self.operation}: {self.elapsed_seconds:.3f}s [{status}]"


@dataclass
class TimingLog:
    """Accumulated timing information for a pipeline run."""
    entries: list[TimingResult] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)

    def add(self, result: TimingResult):
        """Add a timing result."""
        self.entries.append(result)
        logger.info(str(result))

    def total_time(self) -> float:
        """Total elapsed time."""
        return time.time() - self.start_time

    def summary(self) -> str:
        """Generate summary of all timings."""
        lines = ["Timing Summary:", "-" * 40]
        for entry in self.entries:
            lines.append(f"  {entry}")
        lines.append("-" * 40)
        lines.append(f"  Total: {self.total_time():.3f}s")
        return "\n".join(lines)

    def get_slowest(self, n: int = 3) -> list[TimingResult]:
        """Get the n slowest operations."""
        return sorted(self.entries, key=lambda x: x.elapsed_seconds, reverse=True)[:n]


# Timing log for the current pipeline run
_current_timing_log: Optional[TimingLog] = None


def get_timing_log() -> TimingLog:
    """Get or create the current timing log."""
    global _current_timing_log
    if _current_timing_log is None:
        _current_timing_log = TimingLog()
    return _current_timing_log


def reset_timing_log() -> TimingLog:
    """Reset the timing log for a new run."""
    global _current_timing_log
    _current_timing_log = TimingLog()
    return _current_timing_log


@contextmanager
def timed_operation(name: str, log: bool = True):
    """
    Context manager for timing a named operation.

    Args:
        name: Name of the operation for logging
        log: Whether to record the timing in the current timing log

    Yields:
        TimingResult that will be populated on exit
    """
    result = TimingResult(operation=name, elapsed_seconds=0, success=False)
    start = time.time()

    try:
        yield result
        result.success = True
    except Exception as e:
        result.error = str(e)
        raise
    finally:
        result.elapsed_seconds = time.time() - start
        if log:
            get_timing_log().add(result)


class ProgressTimer:
    """
    Track progress of iterative operations.

    Estimates time remaining and logs progress.
    """

    def __init__(self, total: int, operation_name: str = "Processing",
                 log_interval: float = 5.0):
        self.total = total
        self.operation_name = operation_name
        self.log_interval = log_interval
        self.current = 0
        self.start_time = time.time()
        self.last_log_time = self.start_time

    def update(self, n: int = 1):
        """Update progress by n items."""
        self.current += n

        now = time.time()
        if now - self.last_log_time >= self.log_interval:
            self._log_progress()
            self.last_log_time = now

    def _log_progress(self):
        elapsed = time.time() - self.start_time
        if self.current > 0 and elapsed > 0:
            rate = self.current / elapsed
            remaining = max(self.total - self.current, 0) / rate
            pct = 100 * min(self.current, self.total) / self.total if self.total else 100.0
            logger.info(f"{self.operation_name}: {pct:.1f}% ({self.current}/{self.total}) "
                        f"- {elapsed:.1f}s elapsed, ~{remaining:.1f}s remaining")

    def finish(self):
        """Mark operation as complete and log final timing."""
        elapsed = time.time() - self.start_time
        rate = self.current / elapsed if elapsed > 0 else 0
        logger.info(f"{self.operation_name}: Complete - {self.current} items in {elapsed:.3f}s "
                    f"({rate:.1f} items/s)")
