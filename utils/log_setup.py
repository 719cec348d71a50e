# utils/log_setup.py
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LEVELS = {
    "error": "ERROR",
    "warn": "WARNING",
    "warning": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
    "silly": "TRACE",
}

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> [<level>{level}</level>] "
    "<cyan>{extra[component]}</cyan>: {message}"
)


def resolve_level(level: str) -> str:
    return LEVELS.get((level or "info").lower(), "INFO")


def configure_logging(level: str = "info", fmt: str = "json", log_dir: Optional[str] = None) -> None:
    """Reset loguru sinks: stdout, plus rotating files when log_dir is set"""
    logger.remove()
    logger.configure(extra={"component": "jibby"})

    serialize = fmt == "json"
    resolved = resolve_level(level)

    logger.add(sys.stdout, level=resolved, serialize=serialize,
               format=TEXT_FORMAT, colorize=not serialize)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(path / "jibby-{time:YYYY-MM-DD}.log", level=resolved, serialize=serialize,
                   rotation="20 MB", retention="14 days", compression="zip")
        logger.add(path / "error.log", level="ERROR", serialize=serialize)
