"""Shared utility helpers for the assignment inventory."""

from .cancellation import CancellationError, CancellationToken, CancellationTokenSource
from .logging import LoggingOptions, configure_logging, get_logger, log_file_path
from .progress import ProgressCallback, ProgressTracker, ProgressUpdate
from .sanitize import sanitize_csv_cell, sanitize_log_message

__all__ = [
    "CancellationError",
    "CancellationToken",
    "CancellationTokenSource",
    "LoggingOptions",
    "ProgressCallback",
    "ProgressTracker",
    "ProgressUpdate",
    "configure_logging",
    "get_logger",
    "log_file_path",
    "sanitize_csv_cell",
    "sanitize_log_message",
]
