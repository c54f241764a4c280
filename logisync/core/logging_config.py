import logging
import logging.config
import os
from datetime import datetime
from typing import Any, Dict, Optional
from logisync.core.config import settings

# One rotating file per stream: logs/<stream>/<stream>-YYYY-MM-DD.log
LOG_STREAMS = ("app", "error", "access", "celery")
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 10


def _rotating_file(log_dir: str, stream: str, level: str, formatter: str, date: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": os.path.join(log_dir, stream, f"{stream}-{date}.log"),
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": LOG_BACKUPS,
        "encoding": "utf-8",
    }


def build_logging_config(log_dir: str, level: str, date: Optional[str] = None) -> Dict[str, Any]:
    """dictConfig for the API process and the Celery worker.

    Service loggers (``logisync.*``) go to console plus the app file, errors
    are copied to the error file, request lines to the access file and
    worker output to the celery file.
    """
    date = date or datetime.now().strftime("%Y-%m-%d")
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "access": {
                "format": "%(asctime)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "app_file": _rotating_file(log_dir, "app", level, "detailed", date),
            "error_file": _rotating_file(log_dir, "error", "ERROR", "detailed", date),
            "access_file": _rotating_file(log_dir, "access", "INFO", "access", date),
            "celery_file": _rotating_file(log_dir, "celery", "INFO", "detailed", date),
        },
        "loggers": {
            "": {
                "level": "WARNING",
                "handlers": ["console", "error_file"],
            },
            "logisync": {
                "level": level,
                "handlers": ["console", "app_file", "error_file"],
                "propagate": False,
            },
            "celery": {
                "level": "INFO",
                "handlers": ["console", "celery_file", "error_file"],
                "propagate": False,
            },
            "access": {
                "level": "INFO",
                "handlers": ["access_file"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["access_file"],
                "propagate": False,
            },
        },
    }


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None):
    log_dir = log_dir or settings.LOG_DIR
    level = (level or settings.LOG_LEVEL).upper()
    for stream in LOG_STREAMS:
        os.makedirs(os.path.join(log_dir, stream), exist_ok=True)

    logging.config.dictConfig(build_logging_config(log_dir, level))
    logging.getLogger(__name__).info(f"🚚 Logging to {log_dir}/ at {level}")
