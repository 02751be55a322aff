import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure process logging from PROGRESS_* environment flags."""
    level = os.getenv("PROGRESS_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "progress_cache": {
                    "level": level,
                },
            },
            "root": {
                "handlers": ["default"],
                "level": os.getenv("PROGRESS_ROOT_LOG_LEVEL", "WARNING").upper(),
            },
        }
    )

    if os.getenv("PROGRESS_DEBUG_HTTP", "0") == "1":
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("httpcore").setLevel(logging.INFO)
