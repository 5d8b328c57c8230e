"""Observability – JsonLoggerFactory."""
from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

# Libraries whose INFO chatter drowns out outbox events.
_NOISY_LOGGERS = ("aiokafka", "aio_pika", "aiormq", "sqlalchemy.engine")


class JsonLoggerFactory:
    """Route structlog and stdlib logging through one handler.

    Every ``get_logger`` call in relaybus logs event-style keys
    (``outbox.event_published``); this renders them as one JSON object per
    line, or in colour for local runs with ``json=False``.
    """

    @staticmethod
    def configure(
        level: int | str = logging.INFO,
        *,
        json: bool = True,
        stream: TextIO | None = None,
    ) -> None:
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        renderer: Any = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            )
        )
        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(level)
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    @classmethod
    def configure_from_settings(cls, settings: Any, *, json: bool = True) -> None:
        """Configure using ``settings.log_level`` (e.g. :class:`RelaybusSettings`)."""
        cls.configure(settings.log_level, json=json)


__all__ = ["JsonLoggerFactory"]
