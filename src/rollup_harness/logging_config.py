"""Harness logging — structlog over the stdlib root logger.

Console output for a developer watching a run, JSON lines for CI. The driver
binds a run id and the network label once; the orchestrator binds the token
under test per scenario, so every entry of a run (and of each token) can be
filtered together.

Usage:
    from rollup_harness.logging_config import bind_run, get_logger, setup_logging
    setup_logging(log_level="INFO", json_logs=False)
    bind_run(network="localhost")
    logger = get_logger(__name__)
    logger.info("scenario.deposit.committed", elapsed_ms=812)
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import IO

import structlog

# Client libraries that log every JSON-RPC round-trip at DEBUG.
_CHATTY_LOGGERS = ("httpx", "httpcore", "web3.providers", "web3.manager", "urllib3")


def _drop_none(_logger, _method: str, event_dict: dict) -> dict:
    """Omit unset optional fields (reference, fail reason) from log lines."""
    return {key: value for key, value in event_dict.items() if value is not None}


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Level name for the harness loggers (DEBUG shows every poll).
        json_logs: JSON lines instead of the colored console renderer.
        stream: Output stream; stdout when omitted.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_none,
    ]
    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        pre_chain.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None and sys.stdout.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run(network: str, run_id: str | None = None) -> str:
    """Bind run-wide context for every later log entry; returns the run id."""
    run_id = run_id or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id, network=network)
    return run_id


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
