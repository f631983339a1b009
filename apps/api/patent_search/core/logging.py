import logging
import logging.config
import json
import traceback
import contextvars
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from patent_search.core.settings import Settings

_CONFIGURED = False

# Request ID shared by every log line emitted while serving one request
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

_RESERVED_ATTRS = frozenset([
    'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename',
    'funcName', 'levelname', 'levelno', 'lineno', 'message', 'module',
    'msecs', 'msg', 'name', 'pathname', 'process', 'processName',
    'relativeCreated', 'stack_info', 'taskName', 'thread', 'threadName', 'request_id',
])


class RequestIdFilter(logging.Filter):
    """Filter that adds request ID to log records."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """JSON line formatter used outside of dev."""
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func_name": record.funcName,
            "line_number": record.lineno,
        }

        req_id = getattr(record, "request_id", "")
        if req_id:
            log_data["request_id"] = req_id

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # extra={"chunk": 3, "filename": ...} ends up on the record itself
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except TypeError:
                log_data[key] = str(value)

        return json.dumps(log_data)


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context, generating one if needed."""
    value = request_id or uuid.uuid4().hex[:12]
    request_id_var.set(value)
    return value


def configure_logging(settings: Settings) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = logging.INFO if settings.env != "dev" else logging.DEBUG

    log_format = (
        "%(asctime)s [%(levelname)s] [req_id:%(request_id)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s"
    )

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {
                "()": RequestIdFilter,
            },
        },
        "formatters": {
            "standard": {
                "format": log_format,
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if settings.env != "dev" else "standard",
                "filters": ["request_id"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": {  # Root logger
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
            "elastic_transport": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
            "pymongo": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
            "patent_search": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)
    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "patent_search")
