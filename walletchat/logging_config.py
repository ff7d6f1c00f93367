"""
Structured logging for the wallet assistant.

Modules log through ``logging.getLogger(__name__)``. ``setup_logging`` sends
those records through structlog: JSON lines normally, colored console output
at DEBUG. Logs go to stderr so CLI replies on stdout stay readable.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import settings

# Loggers that report every RPC round trip at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def _renderer(debug: bool) -> structlog.types.Processor:
    if debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(log_level: Optional[str] = None) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    debug = level == logging.DEBUG

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if not debug:
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(debug),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_chat_context(wallet: Optional[str] = None, intent: Optional[str] = None) -> None:
    """Tag every log line of the current chat turn with its wallet and intent."""
    structlog.contextvars.clear_contextvars()
    fields = {"wallet": wallet, "intent": intent}
    structlog.contextvars.bind_contextvars(**{k: v for k, v in fields.items() if v})
