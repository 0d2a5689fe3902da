"""
Neighborhood Intel - Logging Configuration

Job scripts call setup_logging() once at import. Module loggers obtained with
get_logger(__name__) live under the 'src' and 'config' packages and write
through the job's handlers, so a snapshot build leaves one log file per job
per day. Production output is one JSON object per line.
"""

import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

from pythonjsonlogger import jsonlogger

from config.settings import get_settings

settings = get_settings()

# Parents of every get_logger(__name__) logger in this project
PROJECT_LOGGERS = ("src", "config")

JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_formatter(environment: str) -> logging.Formatter:
    """JSON lines in production, human-readable text elsewhere."""
    if environment == "production":
        return jsonlogger.JsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def log_file_path(job_name: str, log_dir: str, day: Optional[datetime] = None) -> str:
    """Daily log file for a job, e.g. logs/snapshot_builder_20250115.log"""
    day = day or datetime.now()
    return os.path.join(log_dir, f"{job_name}_{day.strftime('%Y%m%d')}.log")


def _install_handlers(logger: logging.Logger, handlers: List[logging.Handler], level: int):
    for old in logger.handlers:
        old.close()
    logger.handlers = list(handlers)
    logger.setLevel(level)
    logger.propagate = False


def setup_logging(job_name: str = "neighborhood_intel") -> logging.Logger:
    """
    Configure logging for a job run.

    The job logger and the project package loggers share one console handler
    and, when LOG_DIR is set, one daily file handler. Calling again replaces
    (and closes) the previous handlers.

    Args:
        job_name: Job logger name, also the log file prefix

    Returns:
        The job logger
    """
    level = getattr(logging, settings.LOG_LEVEL)
    formatter = build_formatter(settings.ENVIRONMENT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers.append(
            logging.FileHandler(log_file_path(job_name, settings.LOG_DIR), encoding="utf-8")
        )

    for handler in handlers:
        handler.setFormatter(formatter)

    for name in (job_name, *PROJECT_LOGGERS):
        _install_handlers(logging.getLogger(name), handlers, level)

    return logging.getLogger(job_name)


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        module_name: Name of the module (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(module_name)
