from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from threading import local

LOGGER_NAME = "rto_validator"

_log_ctx = local()


def set_log_context(**kwargs: object) -> None:
    for key, value in kwargs.items():
        setattr(_log_ctx, key, value)


def clear_log_context() -> None:
    _log_ctx.__dict__.clear()


def get_log_context() -> dict[str, object]:
    return {k: v for k, v in _log_ctx.__dict__.items() if not k.startswith("_")}


def get_logger(name: str) -> logging.Logger:
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        data = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%SZ"
            ),
            "level": record.levelname,
            "logger": record.name,
            "validation_detail_id": ctx.get("validation_detail_id"),
            "stage": ctx.get("stage"),
            "requirement": ctx.get("requirement"),
            "msg": record.getMessage(),
        }

        if hasattr(record, "duration_ms"):
            data["duration_ms"] = record.duration_ms
        if hasattr(record, "metrics"):
            data["metrics"] = record.metrics
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        # Clean nulls
        data = {k: v for k, v in data.items() if v is not None}
        return json.dumps(data, default=str)


def setup_logging(
    level: int | str = logging.INFO, log_file: Path | str | None = None
) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = JsonFormatter()

    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger
