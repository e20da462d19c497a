"""
Structured logging configuration.

Features:
- JSON logging format for production
- Request ID tracking
- Tenant (company) and actor context on every record
- Performance timing
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from poolroute.core.config import settings

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
company_id_var: ContextVar[str] = ContextVar("company_id", default="")
actor_id_var: ContextVar[str] = ContextVar("actor_id", default="")

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_actor(company_id: str, actor_id: str) -> None:
    """Attach the authenticated tenant and actor to log records of this request."""
    company_id_var.set(company_id)
    actor_id_var.set(actor_id)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        company_id = company_id_var.get()
        if company_id:
            log_data["company_id"] = company_id

        actor_id = actor_id_var.get()
        if actor_id:
            log_data["actor_id"] = actor_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        actor_id = actor_id_var.get()

        context = ""
        if request_id:
            context += f"[{request_id[:8]}]"
        if actor_id:
            context += f"[actor:{actor_id[:8]}]"

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} {record.levelname:8} {context:20} "
            f"{record.name}:{record.funcName}:{record.lineno} - {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (for production)
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(HumanFormatter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    loggers_config = {
        "poolroute": level,
        "uvicorn": "INFO",
        "uvicorn.access": "WARNING",
        "sqlalchemy.engine": "WARNING" if not settings.DEBUG else "INFO",
    }

    for logger_name, logger_level in loggers_config.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level.upper()))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request logging and tracking.

    Assigns a request ID (or reuses the caller's ``X-Request-ID``), logs start and
    completion with timing, and echoes the ID back on the response.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        company_id_var.set("")
        actor_id_var.set("")
        request.state.request_id = request_id

        logger = logging.getLogger("poolroute.requests")

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query": str(request.query_params),
                "client_ip": request.client.host if request.client else None,
            },
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"Request failed: {request.method} {request.url.path}",
                extra={"error": str(e)},
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        response.headers["X-Request-ID"] = request_id

        return response
