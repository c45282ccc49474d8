# revisions/core/logging.py

import logging.config
import os
import sys

from revisions.core.config import settings


def build_logging_config(log_dir: str, level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "[%(asctime)s] %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "file": {
                "format": (
                    "%(asctime)s | %(levelname)s | %(process)d | %(threadName)s | "
                    "%(name)s | %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "audit": {
                # Minimal format for revision audit trail
                "format": "%(asctime)s | AUDIT | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "console",
                "level": "DEBUG",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": os.path.join(log_dir, "revisions.log"),
                "formatter": "file",
                "level": "INFO",
                "maxBytes": 5 * 1024 * 1024,  # 5MB
                "backupCount": 5,
                "encoding": "utf-8",
            },
            "audit": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": os.path.join(log_dir, "audit.log"),
                "formatter": "audit",
                "level": "INFO",
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 3,
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "revisions": {
                "handlers": ["console", "file"],
                "level": level,
                "propagate": False,
            },
            # Audit logger: revision created/pruned/deleted, rollbacks
            "audit": {
                "handlers": ["audit"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }


def init_logging(log_dir: str | None = None, level: str | None = None):
    """
    Initialize logging for the revisions library.
    Called by the host application; the library never configures logging on import.
    """
    log_dir = log_dir or settings.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    logging.config.dictConfig(
        build_logging_config(log_dir, (level or settings.LOG_LEVEL).upper())
    )
    logger = logging.getLogger(__name__)
    logger.info("Logging initialized")
