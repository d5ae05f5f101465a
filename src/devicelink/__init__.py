"""Device authorization grants for headless CLI clients.

A CLI asks for a pairing code, a human approves it in a browser on another
device, and the CLI polls until it is handed a long-lived API key.
"""

import logging

import structlog

from devicelink.config import Settings, settings

for _noisy in ("uvicorn.access", "uvicorn.error", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False, pad_event_to=28),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=False,
)

__version__ = "0.1.0"
__all__ = ["Settings", "__version__"]
