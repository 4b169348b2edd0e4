from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.types import Processor

_FOREIGN_PRE_CHAIN: list[Processor] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _build_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def _install(handler: logging.Handler, renderer: Processor, level: str) -> None:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_FOREIGN_PRE_CHAIN)
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    structlog.configure(
        processors=_build_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_json_logging(log_dir: str, level: str = "INFO") -> structlog.stdlib.BoundLogger:
    """Configure structlog to emit NDJSON lines into ``log_dir/app.ndjson``."""

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path / "app.ndjson", encoding="utf-8")
    _install(handler, structlog.processors.JSONRenderer(), level)
    return structlog.stdlib.get_logger()


def setup_console_logging(level: str = "INFO") -> structlog.stdlib.BoundLogger:
    """Human-readable logs on stderr, for local runs."""

    handler = logging.StreamHandler(sys.stderr)
    _install(handler, structlog.dev.ConsoleRenderer(colors=False), level)
    return structlog.stdlib.get_logger()
