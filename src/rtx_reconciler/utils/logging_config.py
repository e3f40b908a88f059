"""Logging configuration for rtxcraft.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- A separate performance log fed by the timing decorators
- Device context (device_id, operation) on every timing line

Environment Variables:
    RTXCRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    RTXCRAFT_LOG_FILE: Path to log file (default: ~/.rtxcraft/rtxcraft.log)
    RTXCRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    RTXCRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from rtx_reconciler.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("ssh_open")
    async def open(self):
        ...

    async with timed_section("apply_plan", device_id="rtx-core", commands=3):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("rtxcraft.perf")

_configured = False


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("RTXCRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".rtxcraft" / "rtxcraft.log"
    path_str = os.environ.get("RTXCRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(console: bool = True) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (respects RTXCRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance log file for command timings

    Calling it again is a no-op.
    """
    global _configured
    if _configured:
        return

    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("RTXCRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("RTXCRAFT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "rtxcraft-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    package_logger = logging.getLogger("rtx_reconciler")
    package_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    package_logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(main_format)
        package_logger.addHandler(console_handler)

    _configured = True
    package_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def _perf_line(operation: str, device_id: Optional[str], elapsed_ms: float, status: str) -> str:
    return f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed_ms:8.2f}ms | {status}"


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "ssh_open", "read")
        device_id: Optional device identifier (otherwise taken from self.device_id)
    """
    def decorator(func: Callable) -> Callable:
        def _device(args) -> Optional[str]:
            if device_id is None and args and hasattr(args[0], "device_id"):
                return args[0].device_id
            return device_id

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev_id = _device(args)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            dev_id = _device(args)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("apply_plan", device_id="rtx-core", commands=4):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except BaseException as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _perf_line(operation, device_id, elapsed, f"FAIL: {e!r}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise

    elapsed = (time.perf_counter() - start) * 1000
    msg = _perf_line(operation, device_id, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)
