import os
from logging.config import dictConfig
from typing import Any, Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes"}


def build_logging_config(level: str, *, debug_http: bool = False, telemetry_level: str = "INFO") -> Dict[str, Any]:
    """dictConfig payload: one stream handler on the root logger."""
    http_level = "DEBUG" if debug_http else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "loggers": {
            "dailyquiz.telemetry": {"level": telemetry_level},
            "httpx": {"level": http_level},
            "uvicorn.access": {"level": "DEBUG" if debug_http else "INFO"},
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process logging from ``QUIZ_LOG_LEVEL``, ``QUIZ_TELEMETRY_LOG_LEVEL`` and ``QUIZ_DEBUG_HTTP``."""
    dictConfig(
        build_logging_config(
            (level or os.getenv("QUIZ_LOG_LEVEL", "INFO")).upper(),
            debug_http=_flag("QUIZ_DEBUG_HTTP"),
            telemetry_level=os.getenv("QUIZ_TELEMETRY_LOG_LEVEL", "INFO").upper(),
        )
    )
