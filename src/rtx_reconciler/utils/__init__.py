"""Utility modules for retries, logging, auditing and redaction."""
from .connection import with_retry, command_retrying
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)
from .sanitizer import sanitize_command, sanitize_mapping

__all__ = [
    "with_retry",
    "command_retrying",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "sanitize_command",
    "sanitize_mapping",
]
