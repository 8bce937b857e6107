"""Logging configuration for the archetype pipeline."""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from flask import Flask

_RESERVED_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_job_context: dict[str, str] = {"run_id": "n/a", "stage": ""}


class JobContextFilter(logging.Filter):
    """Inject run-scoped metadata into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = getattr(record, "run_id", _job_context["run_id"])
        record.stage = getattr(record, "stage", _job_context["stage"])
        return True


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for better log parsing."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "n/a"),
            "stage": getattr(record, "stage", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via `extra={...}`
        for key, value in record.__dict__.items():
            if key in log_data or key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, (str, int, float, bool, list, dict)):
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(app: Flask) -> None:
    """Attach JSON stream + rotating file handlers to the root logger."""
    log_level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.addFilter(JobContextFilter())
    stream_handler.setFormatter(StructuredFormatter())
    stream_handler.setLevel(log_level)

    handlers: list[logging.Handler] = [stream_handler]

    try:
        logs_dir = Path(app.instance_path) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "archetypes.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.addFilter(JobContextFilter())
        file_handler.setFormatter(StructuredFormatter())
        file_handler.setLevel(log_level)
        handlers.append(file_handler)
    except OSError as exc:
        app.logger.warning("Falling back to stream-only logging (file handler unavailable): %s", exc)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(log_level)

    # SQL echo only on warnings
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@contextmanager
def job_context(stage: str, run_id: str | None = None) -> Iterator[str]:
    """Stamp `stage` (and a run id) on every record logged inside the block."""
    previous = dict(_job_context)
    if not run_id:
        # nested stages inherit the enclosing run id
        inherited = previous.get("run_id")
        run_id = inherited if inherited and inherited != "n/a" else uuid.uuid4().hex[:12]
    _job_context["run_id"] = run_id
    _job_context["stage"] = stage
    try:
        yield _job_context["run_id"]
    finally:
        _job_context.update(previous)
