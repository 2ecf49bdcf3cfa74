import logging
import sys

import structlog
from fastapi import Request
from structlog.stdlib import ProcessorFormatter

from src.utils.masking import mask_secret

# Event fields that may carry a caller key or an upstream credential
SECRET_FIELDS = frozenset({"api_key", "caller_key", "key", "user_key"})

REQUEST_CONTEXT_FIELDS = ("ip_address", "request_id", "caller_key")


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def add_request_info(
    logger: structlog.BoundLogger, method_name: str, event_dict: dict
) -> dict:
    context_vars = structlog.contextvars.get_contextvars()
    for field in REQUEST_CONTEXT_FIELDS:
        value = context_vars.get(field)
        if value and field not in event_dict:
            event_dict[field] = value
    return event_dict


def mask_secret_fields(
    logger: structlog.BoundLogger, method_name: str, event_dict: dict
) -> dict:
    """Never let a full key reach the log output."""
    for field in SECRET_FIELDS.intersection(event_dict):
        value = event_dict[field]
        if isinstance(value, str) and not value.endswith("..."):
            event_dict[field] = mask_secret(value)
    return event_dict


def setup_logging(is_production: bool = False, debug: bool = False):
    """Setup structlog configuration with different formats for dev/prod."""
    log_level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_request_info,
        mask_secret_fields,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers = []

    renderer = (
        structlog.processors.JSONRenderer(sort_keys=False)
        if is_production
        else structlog.dev.ConsoleRenderer(colors=True, pad_event=8)
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=renderer))
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").handlers = []
    logging.getLogger("uvicorn.access").handlers = []

    # Job runs are logged by the jobs themselves
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return structlog.get_logger("creditgate")


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance with optional name."""
    return structlog.get_logger(name)
