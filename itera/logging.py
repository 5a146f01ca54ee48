import logging
import re
import sys
from typing import Any, Dict, List

import structlog
from itera.core.config import Settings, settings as default_settings

# Upstream URLs carry the Mapbox secret as a query parameter
ACCESS_TOKEN_PATTERN = re.compile(r"(access_token=)[^&\s\"']+")

UVICORN_LOGGERS = ["uvicorn", "uvicorn.error", "uvicorn.access"]
QUIET_LOGGERS = ["httpx", "httpcore"]


def resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def redact_access_token(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, str) and "access_token=" in value:
            event_dict[key] = ACCESS_TOKEN_PATTERN.sub(r"\1***", value)
    return event_dict


def service_fields(settings: Settings):
    service = settings.PROJECT_NAME.lower()

    def add_service(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", settings.VERSION)
        return event_dict

    return add_service


def build_processors(settings: Settings) -> List[Any]:
    """Shared pipeline followed by a console (development) or JSON renderer."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        service_fields(settings),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_access_token,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
    ]
    if settings.ENV.lower() == "development":
        return processors + [structlog.dev.ConsoleRenderer()]
    return processors + [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def configure_logging(settings: Settings = default_settings):
    """
    Routes standard library and structlog records through one pipeline.
    Every event carries the service name and version, and Mapbox access
    tokens are masked wherever they appear in a string field.
    """
    structlog.configure(
        processors=build_processors(settings),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=resolve_level(settings.LOG_LEVEL))

    # uvicorn ships its own handlers; send its records through the root logger
    for name in UVICORN_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
