"""Logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)``; unknown or empty levels fall back to INFO."""

    if not level:
        return "INFO", True
    normalized = level.strip().upper()
    if normalized == "WARN":
        normalized = "WARNING"
    if normalized in LOG_LEVELS:
        return normalized, False
    return "INFO", True


def configure_logging(level: str | None, *, force: bool = False) -> str:
    normalized, invalid = normalize_log_level(level)
    logging.basicConfig(level=normalized, format=LOG_FORMAT, force=force)
    if invalid:
        logging.getLogger(__name__).warning(
            "Invalid LOG_LEVEL %r, using %s", level, normalized
        )
    return normalized
