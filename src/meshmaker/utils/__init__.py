"""Utility modules: stage timing and progress tracking."""

from meshmaker.utils.timing import (
    ProgressTimer,
    TimingLog,
    TimingResult,
    get_timing_log,
    reset_timing_log,
    timed_operation,
)

__all__ = [
    "ProgressTimer",
    "TimingLog",
    "TimingResult",
    "get_timing_log",
    "reset_timing_log",
    "timed_operation",
]
