"""Logging bootstrap for the partixel service.

Records go to the console and to ``partixel-runtime.log``, rotated at UTC
midnight. The frame loop logs from the event-loop thread while video encoding
runs in the default executor, so the thread name is part of every line.
"""
from __future__ import annotations

from logging.config import dictConfig
from pathlib import Path
from typing import Optional

from .config import ROOT_DIR, Settings

RUNTIME_LOG_NAME = "partixel-runtime.log"


def configure_logging(settings: Optional[Settings] = None, log_dir: Optional[Path] = None) -> Path:
    """Install handlers for the renderer; returns the runtime log path.

    ``log_dir`` overrides ``settings.log_directory``. Uvicorn access lines are
    held at ``settings.access_log_level`` because preview and snapshot clients
    poll continuously.
    """
    settings = settings or Settings(_env_file=None)
    level = settings.log_level.upper()
    log_dir = Path(log_dir or settings.log_directory or ROOT_DIR / "logs").expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / RUNTIME_LOG_NAME

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                },
                "runtime_file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "default",
                    "level": level,
                    "filename": str(log_path),
                    "when": "midnight",
                    "backupCount": max(int(settings.log_retention_days), 1),
                    "utc": True,
                    "delay": True,
                    "encoding": "utf-8",
                },
            },
            "loggers": {
                "partixel": {"level": level},
                "uvicorn.access": {"level": settings.access_log_level.upper()},
            },
            "root": {"level": level, "handlers": ["console", "runtime_file"]},
        }
    )
    return log_path


__all__ = ["RUNTIME_LOG_NAME", "configure_logging"]
