"""
Structured Logging with Structlog.

JSON logs carrying the service, its Android package and whatever request or
notification context is bound. Purchase and device tokens are credentials;
they are shortened before any log line is rendered.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from playsubs.config import settings

# Event keys holding Google Play purchase tokens or FCM registration tokens
TOKEN_KEYS = frozenset({"purchase_token", "linked_purchase_token", "device_token", "token"})
TOKEN_PREFIX_LENGTH = 8

# Chatty third-party loggers: the discovery cache warns on every build(),
# httpx logs every FCM request at INFO
QUIET_LOGGERS = {
    "googleapiclient.discovery_cache": logging.ERROR,
    "google.auth.transport.requests": logging.WARNING,
    "httpx": logging.WARNING,
}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service, version and the configured Android package to every entry."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    if settings.ANDROID_PACKAGE_NAME:
        event_dict.setdefault("package_name", settings.ANDROID_PACKAGE_NAME)
    return event_dict


def shorten_tokens(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Keep only a prefix of purchase and device tokens."""
    for key in TOKEN_KEYS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and len(value) > TOKEN_PREFIX_LENGTH:
            event_dict[key] = f"{value[:TOKEN_PREFIX_LENGTH]}..."
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog on top of stdlib logging.

    A JSON entry looks like:
    {
        "event": "purchase_registered",
        "level": "info",
        "timestamp": "2026-10-18T12:00:00.123456Z",
        "logger": "playsubs.services.purchase_manager",
        "service": "playsubs-api",
        "version": "0.1.0",
        "package_name": "com.example.subscriptions",
        "sku": "premium_monthly",
        "user_id": "1234567890"
    }
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        shorten_tokens,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind structlog context variables for the duration of a block.

    Usage:
        with log_context(message_id=message_id, package_name=package_name):
            logger.info("developer_notification_received")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
