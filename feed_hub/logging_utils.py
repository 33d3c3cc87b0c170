"""
Logging setup for feed_hub.

Everything logs under the ``feed_hub`` logger: a Rich console handler for
humans and an optional file handler (plain text or JSONL) for machines.
Upstream AI interactions go to a separate ``feed_hub.llm`` logger that
always writes JSONL and never reaches the console.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
import re
from typing import Any, Callable

from rich.logging import RichHandler

from .config import LoggingConfig


ROOT_LOGGER = "feed_hub"
TRUNCATION_MARKER = "...(truncated)"

_URL_RE = re.compile(r"https?://\S+")

REDACTION_MODES: dict[str, Callable[[str], str]] = {
    "none": lambda text: text,
    "redact_content": lambda text: "",
    "redact_urls": lambda text: _URL_RE.sub("[REDACTED_URL]", text),
}

# Attributes every LogRecord carries; anything else came in via ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def setup_logging(cfg: LoggingConfig, log_dir: Path | None = None) -> logging.Logger:
    """Configure the package logger from ``cfg``; safe to call repeatedly."""
    level = _level_from_string(cfg.level)
    logger = _reset_logger(ROOT_LOGGER, level)

    if cfg.console:
        console = RichHandler(rich_tracebacks=True, show_time=False, show_level=True)
        console.setLevel(level)
        console.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console)

    if cfg.file:
        path = _log_path(cfg, log_dir, cfg.filename)
        formatter = JsonlFormatter() if cfg.format == "jsonl" else _TEXT_FORMATTER
        logger.addHandler(_file_handler(path, formatter, level))

    return logger


def setup_llm_logger(cfg: LoggingConfig, log_dir: Path | None = None) -> logging.Logger | None:
    """Return the upstream interaction logger, or None when disabled."""
    if not cfg.llm_log_enabled:
        return None
    level = _level_from_string(cfg.level)
    logger = _reset_logger(f"{ROOT_LOGGER}.llm", level)
    logger.addHandler(_file_handler(_log_path(cfg, log_dir, cfg.llm_log_file), JsonlFormatter(), level))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger, e.g. ``feed_hub.pipeline``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_event(
    logger: logging.Logger | None,
    message: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Log ``message`` with ``fields`` attached as record attributes.

    The JSONL formatter writes each field as a top-level key. A None logger
    is accepted so optional loggers need no guard at the call site.
    """
    if logger is None:
        return
    logger.log(level, message, extra=fields)


def redact_text(text: str, mode: str) -> str:
    """Apply a redaction mode; unknown modes leave the text unchanged."""
    redact = REDACTION_MODES.get(mode)
    return redact(text) if redact is not None else text


def truncate_text(text: str, max_chars: int = 20000) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


class JsonlFormatter(logging.Formatter):
    """One JSON object per record: fixed keys plus every ``extra`` field."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


_TEXT_FORMATTER = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def _reset_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False
    return logger


def _log_path(cfg: LoggingConfig, log_dir: Path | None, filename: str) -> Path:
    directory = log_dir if log_dir is not None else Path(cfg.directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / filename


def _file_handler(path: Path, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _level_from_string(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)
