import logging
import sys

import structlog
from fastapi import Request
from structlog.stdlib import ProcessorFormatter

# Third-party loggers that are noisy at INFO during an aggregation pass
QUIET_LOGGERS = ("stripe", "sqlalchemy.engine", "httpx")

REQUEST_CONTEXT_KEYS = ("request_id", "ip_address")


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def add_request_context(
    logger: structlog.BoundLogger, method_name: str, event_dict: dict
) -> dict:
    """Copy request id and client IP bound by the middleware onto every event."""
    context_vars = structlog.contextvars.get_contextvars()
    for key in REQUEST_CONTEXT_KEYS:
        if context_vars.get(key) and key not in event_dict:
            event_dict[key] = context_vars[key]
    return event_dict


def _renderer(is_production: bool):
    if is_production:
        return structlog.processors.JSONRenderer(sort_keys=False)
    return structlog.dev.ConsoleRenderer(colors=True, pad_event=8)


def setup_logging(is_production: bool = False, level: str = "INFO"):
    """Route structlog through stdlib logging: JSON in prod, console otherwise."""
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_request_context,
            structlog.processors.UnicodeDecoder(),
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=_renderer(is_production)))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Uvicorn access lines duplicate the request middleware
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).handlers = []
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance with optional name."""
    return structlog.get_logger(name)
