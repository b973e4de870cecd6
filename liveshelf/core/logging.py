import json
import logging
import os
import re
import sys
import traceback
from datetime import UTC, datetime
from functools import lru_cache
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from liveshelf.core.settings import get_settings

_RESERVED_RECORD_KEYS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
}
_STRUCTURED_KEYS = {
    "component",
    "operation",
    "item_id",
    "context_data",
    "http_details",
    "error_type",
    "error_message",
}
_SENSITIVE_KEY_PARTS = (
    "authorization",
    "cookie",
    "api-key",
    "apikey",
    "token",
    "password",
    "secret",
    "jwt",
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[a-z0-9\-._~+/]+=*")
_TOKEN_COOKIE_RE = re.compile(r"(?i)\b(ls_access|ls_refresh)=([^;\s]+)")


def _sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip().lower())
    return cleaned.strip("._-") or "liveshelf"


def _redact_value(value: Any) -> Any:
    """Mask credentials in log payloads (headers, cookies, tokens)."""
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, item in value.items():
            name = str(key)
            if any(part in name.lower() for part in _SENSITIVE_KEY_PARTS):
                redacted[name] = "<redacted>"
            else:
                redacted[name] = _redact_value(item)
        return redacted
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_redact_value(item) for item in value)
    if isinstance(value, str):
        value = _BEARER_RE.sub("Bearer <redacted>", value)
        return _TOKEN_COOKIE_RE.sub(r"\1=<redacted>", value)
    return value


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_KEYS and key not in _STRUCTURED_KEYS
    }


def _context_data(record: logging.LogRecord) -> Any:
    context = getattr(record, "context_data", None)
    extras = _extra_fields(record)
    if not extras:
        return context
    if context is None:
        return extras
    if isinstance(context, dict):
        return {**extras, **context}
    return {"context_data": context, **extras}


def _build_json_payload(record: logging.LogRecord, *, include_error: bool) -> dict[str, Any]:
    message = _redact_value(record.getMessage())
    context = _context_data(record)
    http_details = getattr(record, "http_details", None)

    payload: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "component": getattr(record, "component", None) or record.name,
        "operation": getattr(record, "operation", None),
        "message": message,
        "context_data": _redact_value(context) if context is not None else None,
        "http_details": _redact_value(http_details) if http_details is not None else None,
        "item_id": getattr(record, "item_id", None),
        "source_file": record.filename,
        "source_line": record.lineno,
        "source_function": record.funcName,
        "process": record.process,
    }

    if include_error:
        exc_type, exc_value, exc_tb = record.exc_info or (None, None, None)
        payload["error_type"] = (
            getattr(record, "error_type", None)
            or (exc_type.__name__ if exc_type else None)
            or "LogError"
        )
        payload["error_message"] = (
            getattr(record, "error_message", None)
            or (str(exc_value) if exc_value else None)
            or str(message)
        )
        if exc_type and exc_value and exc_tb:
            payload["stack_trace"] = "".join(
                traceback.format_exception(exc_type, exc_value, exc_tb)
            )

    return {k: v for k, v in payload.items() if v is not None}


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, *, include_error: bool):
        super().__init__()
        self.include_error = include_error

    def format(self, record: logging.LogRecord) -> str:
        payload = _build_json_payload(record, include_error=self.include_error)
        return json.dumps(payload, ensure_ascii=False, default=str)


class _StructuredLogFilter(logging.Filter):
    """Only pass records that carry structured context."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in ("context_data", "http_details", "item_id", "operation"):
            if getattr(record, key, None) is not None:
                return True
        return bool(_extra_fields(record))


def _jsonl_handler(directory: Path, filename: str, *, level: int, include_error: bool):
    directory.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(directory / filename),
        when="D",
        interval=1,
        backupCount=0,
        encoding="utf-8",
        delay=True,
        utc=True,
    )
    handler.setLevel(level)
    handler.setFormatter(_JsonLineFormatter(include_error=include_error))
    handler.suffix = "%Y%m%d"
    return handler


@lru_cache
def setup_logging(name: str | None = None, level: str | None = None) -> logging.Logger:
    """
    Configure root logging for the service.

    Console output for humans, plus two JSONL files under ``settings.logs_dir``:
    ``errors/`` (ERROR and above, with stack traces) and ``structured/``
    (records that carry ``extra`` context).

    Args:
        name: Logger name (defaults to app name from settings)
        level: Log level (defaults to settings.log_level)

    Returns:
        The application logger
    """
    settings = get_settings()
    logger_name = name or settings.app_name
    log_level = getattr(logging, (level or settings.log_level).upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    prefix = _sanitize_filename(logger_name)
    root_logger.addHandler(
        _jsonl_handler(
            settings.logs_dir / "errors",
            f"{prefix}_errors_{os.getpid()}.jsonl",
            level=logging.ERROR,
            include_error=True,
        )
    )
    structured_handler = _jsonl_handler(
        settings.logs_dir / "structured",
        f"{prefix}_structured_{os.getpid()}.jsonl",
        level=logging.NOTSET,
        include_error=False,
    )
    structured_handler.addFilter(_StructuredLogFilter())
    root_logger.addHandler(structured_handler)

    app_logger = logging.getLogger(logger_name)
    app_logger.setLevel(log_level)
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
