"""
logsetup.py
───────────
Loguru configuration for the CLI.
"""

from __future__ import annotations
import re
import sys
from typing import Any

from loguru import logger

_SECRET_PATTERNS = [
    re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"(client_secret[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,]+", re.IGNORECASE),
]


def mask_secrets(record: dict[str, Any]) -> bool:
    """Loguru filter: blank out tokens and client secrets in messages."""
    message = record["message"]
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(r"\1********", message)
    record["message"] = message
    return True


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    logger.remove()

    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>"
        ),
        colorize=True,
        filter=mask_secrets,
    )

    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention=5,
            filter=mask_secrets,
        )

    logger.debug("Logging initialised at level {}", level.upper())
