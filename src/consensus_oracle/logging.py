"""Logging setup with request and evaluation context.

Two output formats, selected by ``LOG_FORMAT`` (``settings.log_format``):

- ``text`` (default): ``2024-01-01 12:00:00 | INFO     | consensus_oracle.api
  | [req=N/A] [eval=3f2a1b] [prov=gemini] | message``.
  Empty evaluation/provider tokens are omitted.
- ``json``: one JSON object per line for log aggregators.

Context variables are asyncio-native: values set before the provider tasks
are spawned are copied into each task, and a value set inside a task (the
provider id) stays local to that task.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Context variables
# ---------------------------------------------------------------------------

# HTTP context (set by FastAPI middleware)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Consensus context (set by the engine)
evaluation_id_var: ContextVar[str | None] = ContextVar("evaluation_id", default=None)
provider_var: ContextVar[str | None] = ContextVar("provider", default=None)

_SERVICE_NAME = "consensus-oracle"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class RequestIDFilter(logging.Filter):
    """Copy the context variables onto every ``LogRecord``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "N/A"
        record.evaluation_id = evaluation_id_var.get() or ""
        record.provider = provider_var.get() or ""
        return True


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Emit one JSON object per log line.

    Fields: ``timestamp`` (ISO-8601 UTC), ``level``, ``logger``, ``message``,
    ``request_id``, ``evaluation_id``, ``provider``,
    ``service`` and, on exceptions, ``exc_type``/``exc_value``/``exc_trace``.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat()

        payload: dict[str, Any] = {
            "timestamp": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "N/A"),
            "evaluation_id": getattr(record, "evaluation_id", ""),
            "provider": getattr(record, "provider", ""),
            "service": _SERVICE_NAME,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else None
            payload["exc_value"] = str(exc_value)
            payload["exc_trace"] = traceback.format_exception(exc_type, exc_value, exc_tb)

        return json.dumps(payload, default=str)


class _OracleTextFormatter(logging.Formatter):
    """Human-readable formatter; appends ``[eval=…] [prov=…]`` only when set."""

    _BASE_FMT = (
        "%(asctime)s | %(levelname)-8s | %(name)s "
        "| [req=%(request_id)s]"
    )
    _DATE_FMT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self._BASE_FMT, datefmt=self._DATE_FMT)

    def format(self, record: logging.LogRecord) -> str:
        # Records that bypassed the filter still need the fields the format references
        if not hasattr(record, "request_id"):
            RequestIDFilter().filter(record)
        record.asctime = self.formatTime(record, self.datefmt)
        base = self.formatMessage(record)

        tokens: list[str] = []
        eval_id = getattr(record, "evaluation_id", "")
        provider = getattr(record, "provider", "")
        if eval_id:
            tokens.append(f"[eval={eval_id}]")
        if provider:
            tokens.append(f"[prov={provider}]")

        context_part = (" " + " ".join(tokens)) if tokens else ""
        line = f"{base}{context_part} | {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ---------------------------------------------------------------------------
# Public setup function
# ---------------------------------------------------------------------------

def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure the root logger from arguments or ``settings``.

    Safe to call more than once: a handler is only added to a root logger
    that has none, later calls just adjust the level.
    """
    if log_level is None or log_format is None:
        from consensus_oracle.config import settings as _settings

        log_level = log_level or _settings.log_level
        log_format = log_format or _settings.log_format

    log_level_str = log_level.upper()
    level = getattr(logging, log_level_str, logging.INFO)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(RequestIDFilter())
    if log_format.lower() == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(_OracleTextFormatter())
    root_logger.addHandler(console_handler)

    # Request-level chatter from the HTTP stack
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialised (level=%s, format=%s)", log_level_str, log_format
    )


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------

def set_request_id(request_id: str | None) -> None:
    request_id_var.set(request_id)


def generate_request_id() -> str:
    """Generate a new UUID4 request id."""
    return str(uuid.uuid4())


def set_evaluation_context(
    evaluation_id: str | None = None,
    provider: str | None = None,
) -> None:
    """Bind consensus context into the current async context.

    Only the passed arguments are updated, so a provider task can set its
    provider id without touching the evaluation id inherited from the engine.
    """
    if evaluation_id is not None:
        evaluation_id_var.set(evaluation_id)
    if provider is not None:
        provider_var.set(provider)


def clear_evaluation_context() -> None:
    evaluation_id_var.set(None)
    provider_var.set(None)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> None:
    """Log ``exc`` at ERROR with traceback and optional key/value context."""
    context_str = f" | context={context}" if context else ""
    logger.error("Exception: %s%s", exc, context_str, exc_info=exc)
