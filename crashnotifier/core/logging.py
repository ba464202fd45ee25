"""
Crash Notifier Logging

Centralized logging configuration using loguru.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Log directory for the current run
_current_log_dir: Optional[Path] = None


def get_log_dir() -> Optional[Path]:
    """Get current run's log directory"""
    return _current_log_dir


def setup_logging(
    base_dir: Path,
    console_level: str = "INFO",
    file_level: str = "DEBUG",
) -> Path:
    """
    Setup console and file logging for a notifier run.

    Creates a log directory: {base_dir}/crashnotifier_{timestamp}/

    Args:
        base_dir: Base directory for logs
        console_level: Log level for console output
        file_level: Log level for file output

    Returns:
        Path to the log directory
    """
    global _current_log_dir

    logger.remove()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = Path(base_dir) / f"crashnotifier_{timestamp}"
    log_dir.mkdir(parents=True, exist_ok=True)
    _current_log_dir = log_dir

    logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT, colorize=True)

    logger.add(
        log_dir / "crashnotifier.log",
        level=file_level,
        format=FILE_FORMAT,
        rotation="50 MB",
        retention="7 days",
        encoding="utf-8",
        enqueue=True,  # written from watcher and pipeline threads
    )

    # Error log file - only errors and above
    logger.add(
        log_dir / "error.log",
        level="ERROR",
        format=FILE_FORMAT,
        rotation="10 MB",
        encoding="utf-8",
        enqueue=True,
    )

    logger.info(f"Logging initialized: {log_dir}")
    return log_dir


def setup_console_only(level: str = "INFO"):
    """
    Setup console-only logging (CLI default).

    Args:
        level: Log level
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)


def add_component_log(name: str, level: str = "DEBUG") -> Path:
    """
    Add a separate log file for a specific component.

    Only messages logged through get_component_logger(name) reach it.

    Args:
        name: Component name, also the log file name (without extension)
        level: Log level

    Returns:
        Path to the log file
    """
    if _current_log_dir is None:
        raise RuntimeError("Logging not initialized. Call setup_logging() first.")

    log_file = _current_log_dir / f"{name}.log"
    logger.add(
        log_file,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}",
        filter=lambda record: record["extra"].get("component") == name,
        encoding="utf-8",
        enqueue=True,
    )
    return log_file


def get_component_logger(name: str):
    """
    Get a logger bound to a specific component log.

    Args:
        name: Component name

    Returns:
        Bound logger instance
    """
    return logger.bind(component=name)


__all__ = [
    "logger",
    "get_log_dir",
    "setup_logging",
    "setup_console_only",
    "add_component_log",
    "get_component_logger",
]
