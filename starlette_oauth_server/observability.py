"""Observability helpers: structlog JSON + request context."""

import logging
import time
import uuid
from typing import IO

import structlog
from starlette.requests import Request
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars
from structlog.processors import TimeStamper
from structlog.stdlib import ProcessorFormatter

from starlette_oauth_server.config import settings
from starlette_oauth_server.integration.transport import (
    HttpResponse,
    NextFunction,
    Stage,
)


def setup_structlog_json(level: str | int | None = None, stream: IO[str] | None = None) -> None:
    """Render structlog and stdlib records as one JSON object per line.

    ``level`` defaults to ``settings.LOG_LEVEL``; ``stream`` defaults to stderr.
    Context bound by ``request_context`` is merged into every record.
    """
    pre_chain = [
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        TimeStamper(fmt="iso", utc=True),
    ]

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[
                ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.LOG_LEVEL)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            *pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def request_context(header_name: str = "X-Request-ID") -> Stage:
    """Return a stage binding request_id/method/path to logs and echoing the id."""
    logger = structlog.get_logger(__name__)

    async def stage(request: Request, response: HttpResponse, call_next: NextFunction) -> None:
        request_id = request.headers.get(header_name) or str(uuid.uuid4())
        bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        response.set({header_name: request_id})
        start = time.perf_counter()
        try:
            logger.info(
                "http.request.start",
                client_host=getattr(request.client, "host", None),
            )
            await call_next()
        finally:
            logger.info(
                "http.request.end",
                status_code=response.status_code if response.finished else None,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            clear_contextvars()

    return stage


def current_request_id(default: str | None = None) -> str | None:
    """Return bound request_id or default if missing."""
    return get_contextvars().get("request_id") or default
