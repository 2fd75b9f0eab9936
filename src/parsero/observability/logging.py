"""
parsero.observability.logging

Structured logging for agent runs.

Responsibilities:
- Configure `structlog` from engine settings (opt-in; importing parsero never configures logging).
- Bind per-run context (service, agent, run id) onto a logger.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from parsero.settings import Settings


def configure_logging(settings: Settings) -> None:
    """
    JSON lines on stdout, filtered at `settings.log_level`.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _default_service(settings.service_name),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _default_service(service_name: str):
    # Events logged outside a run still carry the embedding service's name.
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_run(logger: Any, settings: Settings, run_id: str) -> Any:
    return logger.bind(service=settings.service_name, agent=settings.agent_name, run_id=run_id)


# --- Module Notes -----------------------------------------------------------
# Run context is bound on the logger rather than in contextvars, so concurrent
# runs of different agents never see each other's metadata.
