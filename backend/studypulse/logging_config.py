import logging
import os
from logging.config import dictConfig
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def logging_settings(level: str, telemetry_level: str) -> Dict[str, Any]:
    """dictConfig payload: one stderr handler, telemetry events leveled on their own."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": LOG_FORMAT}},
        "handlers": {"stderr": {"class": "logging.StreamHandler", "formatter": "plain"}},
        "root": {"handlers": ["stderr"], "level": level.upper()},
        "loggers": {"studypulse.telemetry": {"level": telemetry_level.upper()}},
    }


def configure_logging() -> None:
    level = os.getenv("STUDYPULSE_LOG_LEVEL", "INFO")
    dictConfig(logging_settings(level, os.getenv("STUDYPULSE_TELEMETRY_LOG_LEVEL", level)))

    # Outbound narrative calls go through httpx.
    if os.getenv("STUDYPULSE_DEBUG_HTTP", "0") == "1":
        logging.getLogger("httpx").setLevel(logging.DEBUG)
