"""Request-scoped correlation IDs and one-line decision logs.

The correlation ID lives in a ContextVar set by the API middleware; a
filter copies it onto every record so the formatter can prefix it.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Decision results logged above INFO
_ERROR_RESULTS = frozenset({"error", "failed"})
_WARNING_RESULTS = frozenset({"duplicate", "ignored", "rejected"})


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind ``correlation_id`` (or a fresh UUID) to the current context."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes each line with ``[correlation_id]``."""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id is None:
            correlation_id = get_correlation_id() or NO_CORRELATION_ID
            record.correlation_id = correlation_id
        return f"[{correlation_id}] {super().format(record)}"


def get_logger(name: str) -> logging.Logger:
    """``logging.getLogger`` with the correlation filter attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def _emit(
    logger: logging.Logger,
    result: str | None,
    headline: str,
    context: dict[str, Any],
) -> None:
    parts = [headline]
    parts.extend(f"{key}={value}" for key, value in context.items() if value is not None)
    message = " | ".join(parts)

    if result in _ERROR_RESULTS:
        level = logging.ERROR
    elif result in _WARNING_RESULTS:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(level, message, extra={k: v for k, v in context.items() if v is not None})


def log_webhook_event(
    logger: logging.Logger,
    event_type: str | None,
    event_id: str | None,
    *,
    result: str | None = None,
    **context: Any,
) -> None:
    """Log what happened to one webhook delivery.

    Args:
        logger: Logger instance
        event_type: Stripe event type
        event_id: Stripe event ID
        result: received, materialized, duplicate, ignored or error
        **context: session_id, booking_id, error and similar fields
    """
    _emit(
        logger,
        result,
        f"Webhook event: {event_type} ({event_id})",
        {"result": result, **context},
    )


def log_confirmation(
    logger: logging.Logger,
    channel: str,
    state: str,
    **context: Any,
) -> None:
    """Log the reconciler's decision for a session-check confirmation."""
    _emit(logger, state, f"Confirmation ({channel}): {state}", context)
