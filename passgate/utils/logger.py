"""Structured logging for Passgate.

structlog is configured once at process start. Every log line carries the
announce request id (bound through ``structlog.contextvars`` while a request
is in flight) and a float timestamp.
"""

import logging
import sys
import time
from typing import Optional

import structlog
from structlog.types import EventDict, Processor


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON lines. If False, use console format.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "passgate") -> structlog.stdlib.BoundLogger:
    """Get a logger bound to ``name`` (typically the module name)."""
    return structlog.get_logger(name)


def mask_passkey(passkey: Optional[str]) -> str:
    """Return a log-safe rendering of a passkey: first 4 chars plus '***'.

    Passkeys are bearer secrets; full values never reach the logs.
    """
    if not passkey:
        return ""
    return passkey[:4] + "***"


def set_request_id(request_id: str) -> None:
    """Bind request_id to every log line of the current announce/scrape.

    Any binding left over from a previous request in this context is dropped.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def get_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("request_id")


def clear_request_id() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


# Reconfigured by passgate.main from LOG_LEVEL / JSON_LOGS
configure_logging()
