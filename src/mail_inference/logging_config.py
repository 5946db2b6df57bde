"""Structured logging configuration using structlog.

Mail content is private: events are scrubbed of body and prompt fields before
rendering, whatever logger produced them. Batch runs bind a ``run_id`` through
structlog contextvars so every engine call made on behalf of a run can be
correlated.
"""

import logging
import sys
import uuid
from typing import Optional, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from mail_inference import __version__


APP_NAME = "mail-inference"

# Event keys that may carry message text or prompts built from it
PRIVATE_FIELDS = frozenset({"body", "body_text", "body_html", "prompt", "response", "text"})

RUN_CONTEXT_KEYS = ("run_id", "batch_size", "total")


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("app", APP_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def scrub_private_fields(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace mail text with its length so it never reaches a log sink."""
    for key in PRIVATE_FIELDS.intersection(event_dict):
        value = event_dict[key]
        event_dict[key] = f"<redacted {len(value)} chars>" if isinstance(value, str) else "<redacted>"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    environment: str = "development",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog and stdlib logging through one scrubbing pipeline.

    ``production`` renders JSON lines; any other environment renders for a
    console. Logs go to stderr unless ``stream`` is given, since a host
    application may own stdout.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    as_json = environment.lower() == "production"
    stream = stream or sys.stderr

    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        scrub_private_fields,
    ]
    if as_json:
        chain.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=chain)
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Per-request engine HTTP logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def bind_run_context(**values: object) -> str:
    """Bind a fresh ``run_id`` (plus any extra values) to the logging context.

    Returns:
        The generated run id
    """
    run_id = uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(run_id=run_id, **values)
    return run_id


def clear_run_context() -> None:
    """Remove batch-run values from the logging context."""
    structlog.contextvars.unbind_contextvars(*RUN_CONTEXT_KEYS)
