"""Logging setup: stdlib handlers emitting JSON, structlog on top.

Files live under ``<home>/logs``, where ``<home>`` is resolved exactly as the
config locator resolves it, so the CLI log views read what the engine wrote.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Iterable

import structlog

from .config.loader import home_root, slugify

ROOT_LOGGER = "unidata_engine"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
ENGINE_LOG = "engine.log"
ERROR_LOG = "error.log"

_configured = False


def default_log_dir() -> Path:
    return home_root() / "logs"


def subject_log_path(subject_id: str) -> Path:
    return default_log_dir() / "subjects" / f"{slugify(subject_id)}.log"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def build_logging_config(log_dir: Path, level: str) -> dict[str, Any]:
    """dictConfig payload: console at ``level``, engine file at INFO, errors apart."""

    handlers = {
        "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
        "engine_file": _file_handler(log_dir / ENGINE_LOG, "INFO"),
        "error_file": _file_handler(log_dir / ERROR_LOG, "ERROR"),
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_FORMAT}},
        "handlers": handlers,
        "loggers": {ROOT_LOGGER: {"handlers": list(handlers), "level": level, "propagate": False}},
    }


def configure_logging(verbose: bool = False, level: str | None = None) -> structlog.BoundLogger:
    """Install handlers once per process and return the engine logger."""

    global _configured
    if not _configured:
        log_dir = default_log_dir()
        (log_dir / "subjects").mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(build_logging_config(log_dir, "DEBUG" if verbose else (level or "INFO")))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(ROOT_LOGGER)


def subject_logger(subject_id: str) -> structlog.BoundLogger:
    """Logger bound to one subject; records also land in ``subjects/<slug>.log``."""

    configure_logging()
    path = subject_log_path(subject_id)
    name = f"{ROOT_LOGGER}.subject.{slugify(subject_id)}"
    stdlib_logger = logging.getLogger(name)
    if not any(getattr(handler, "baseFilename", None) == str(path) for handler in stdlib_logger.handlers):
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.INFO)
        parent = logging.getLogger(ROOT_LOGGER).handlers
        if parent:
            handler.setFormatter(parent[0].formatter)
        stdlib_logger.addHandler(handler)
    return structlog.get_logger(name).bind(subject=subject_id)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


def available_subject_logs() -> Iterable[Path]:
    subjects_dir = default_log_dir() / "subjects"
    return sorted(subjects_dir.glob("*.log")) if subjects_dir.exists() else []


__all__ = [
    "available_subject_logs",
    "build_logging_config",
    "configure_logging",
    "default_log_dir",
    "subject_log_path",
    "subject_logger",
    "tail_log",
]
