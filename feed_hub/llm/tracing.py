"""
Langfuse tracing for enrichment calls and refresh passes.

Callers always go through ``start_span``; when tracing is disabled it
yields None and the span helpers become no-ops. A tracer failure is logged
at debug level and never changes the outcome of the traced operation.
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
import json
import logging
import os
from typing import Any, Iterator

from ..config import LangfuseConfig
from ..logging_utils import get_logger, log_event, redact_text, truncate_text

logger = get_logger("tracing")

_TRACER = None
_CFG = LangfuseConfig()


def setup_langfuse(cfg: LangfuseConfig) -> bool:
    """Install the process tracer from ``cfg``.

    Tracing stays off unless it is enabled and both keys resolve, either
    inline or from ``LANGFUSE_PUBLIC_KEY``/``LANGFUSE_SECRET_KEY``.

    Returns:
        True if a tracer is now active
    """
    global _TRACER, _CFG  # noqa: PLW0603
    _CFG = cfg
    _TRACER = None
    if not cfg.enabled:
        return False

    keys = {
        "public_key": cfg.public_key or os.getenv("LANGFUSE_PUBLIC_KEY"),
        "secret_key": cfg.secret_key or os.getenv("LANGFUSE_SECRET_KEY"),
    }
    if not all(keys.values()):
        log_event(logger, "Langfuse keys missing; tracing disabled", level=logging.WARNING, event="tracing_disabled")
        return False

    from langfuse import Langfuse

    _TRACER = Langfuse(
        **keys,
        host=cfg.host or os.getenv("LANGFUSE_HOST"),
        environment=cfg.environment or os.getenv("LANGFUSE_ENVIRONMENT"),
    )
    return True


def get_tracer():
    return _TRACER


@contextmanager
def start_span(
    name: str,
    kind: str,
    input_value: Any | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    """Open a span as the current observation; yield None when tracing is off."""
    tracer = _TRACER
    if tracer is None:
        yield None
        return

    metadata = _scalar_attributes(attributes or {})
    if kind:
        metadata.setdefault("span.kind", kind)

    stack = ExitStack()
    span = None
    try:
        span = stack.enter_context(
            tracer.start_as_current_span(name=name, input=_payload(input_value), metadata=metadata)
        )
    except Exception as exc:  # noqa: BLE001
        _tracer_failed("open", name, exc)

    try:
        yield span
    finally:
        try:
            stack.close()
        except Exception as exc:  # noqa: BLE001
            _tracer_failed("close", name, exc)


def set_span_output(span: Any | None, output_value: Any) -> None:
    if span is None:
        return
    payload = _payload(output_value)
    if payload is not None:
        _update(span, output=payload)


def record_span_error(span: Any | None, exc: Exception) -> None:
    if span is not None:
        _update(span, level="ERROR", status_message=str(exc))


def flush() -> None:
    """Send pending spans before the process exits."""
    if _TRACER is None:
        return
    try:
        _TRACER.flush()
    except Exception as exc:  # noqa: BLE001
        _tracer_failed("flush", "", exc)


def _payload(value: Any) -> str | None:
    """Serialize, redact and truncate a span input/output."""
    if value is None:
        return None
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=True, default=str)
    return truncate_text(redact_text(text, _CFG.redaction), _CFG.max_text_chars)


def _scalar_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value if isinstance(value, (str, int, float, bool)) else str(value)
        for key, value in attrs.items()
        if value is not None
    }


def _update(span: Any, **kwargs: Any) -> None:
    try:
        span.update(**kwargs)
    except Exception as exc:  # noqa: BLE001
        _tracer_failed("update", "", exc)


def _tracer_failed(action: str, span_name: str, exc: Exception) -> None:
    log_event(
        logger,
        f"Langfuse {action} failed",
        level=logging.DEBUG,
        event="tracing_error",
        span=span_name,
        error=f"{type(exc).__name__}: {exc}",
    )
