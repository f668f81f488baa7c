"""Centralized logging configuration for the application."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def setup_logging(log_name: str = "context_enricher", level: str = "INFO", log_dir: Optional[Path] = None) -> logger:
    """
    Configure logging for the application.

    Args:
        log_name: Base name for the log file
        level: Minimum level for both sinks
        log_dir: Directory for the rotating file sink. No file sink when None.

    Returns:
        logger: Configured logger instance
    """
    # Remove any existing handlers
    logger.remove()

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            sink=log_dir / f"{log_name}.log",
            rotation="10 MB",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    logger.add(
        sink=sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>",
    )

    return logger
