"""Logging configuration based on environment."""

import logging
import re
import sys

from imaginghub.config import settings

# Development format: cleaner
DEV_FORMAT = "%(levelname)s:     [%(request_id)s] %(name)s - %(message)s"

# Production format: full details for debugging
PROD_FORMAT = "%(asctime)s - [%(request_id)s] %(name)s - %(levelname)s - %(message)s"

# Session and provider tokens travel in URLs and must not reach the logs whole
_TOKEN_IN_PATH = re.compile(
    r"(/handshake/|[?&]session=|[?&]access_token=)([A-Za-z0-9_-]{8})[A-Za-z0-9_.-]+"
)


def redact_session_tokens(value: str) -> str:
    """Shorten session and provider tokens found in a URL path or query string."""
    return _TOKEN_IN_PATH.sub(r"\1\2...", value)


class SessionTokenFilter(logging.Filter):
    """Redact session tokens from uvicorn access log arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_session_tokens(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def get_uvicorn_log_config() -> dict:
    """Get uvicorn log config based on environment."""
    is_dev = settings.is_development

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": "imaginghub.api.middleware.RequestContextFilter"},
            "session_tokens": {"()": "imaginghub.logging.SessionTokenFilter"},
        },
        "formatters": {
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s "%(request_line)s" %(status_code)s' if is_dev
                else '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
            },
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s [%(request_id)s] %(message)s" if is_dev
                else "%(asctime)s %(levelprefix)s [%(request_id)s] %(message)s",
            },
        },
        "handlers": {
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "filters": ["session_tokens"],
                "stream": "ext://sys.stdout",
            },
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn.access": {
                "handlers": ["access"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["default"],
            "level": settings.log_level,
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    from imaginghub.api.middleware import RequestContextFilter

    is_dev = settings.is_development
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(logging.Formatter(DEV_FORMAT if is_dev else PROD_FORMAT))

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        handlers=[handler],
    )

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
