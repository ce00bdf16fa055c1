import logging
import time

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.typing import Processor
from uvicorn.protocols.utils import get_path_with_query_string

from hubproxy.settings import LogFormats, settings

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL")

# Chatty per-connection loggers; relay hops are logged by the engine instead
QUIET_LOGGERS = ("httpx", "httpcore")


def _shared_processors() -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.PATHNAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.LOG_FORMAT == LogFormats.JSON:
        processors.append(structlog.processors.format_exc_info)
    return processors


def _renderer() -> Processor:
    if settings.LOG_FORMAT == LogFormats.CONSOLE:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Route structlog and stdlib logging through one formatter on stderr."""
    log_level = settings.LOG_LEVEL.upper()
    invalid_level = log_level not in VALID_LOG_LEVELS
    if invalid_level:
        log_level = "INFO"

    processors = _shared_processors()
    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(),
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # uvicorn installs its own handlers unless log_config=None; reuse ours
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if invalid_level:
        structlog.stdlib.get_logger(__name__).warning(
            "Invalid log level, falling back to info",
            log_level=settings.LOG_LEVEL,
        )


def setup_logger(app: FastAPI):
    configure_logging()

    # Added last runs first: the correlation id exists before the access line binds it
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


access_logger = structlog.stdlib.get_logger("api.access")


class RequestContextMiddleware:
    """Bind the request id to the log context and write one access line.

    Must stay plain ASGI: Request.is_disconnected() in the relay routes
    reads the receive channel, which BaseHTTPMiddleware wraps.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        structlog.contextvars.clear_contextvars()
        request_id = correlation_id.get()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        status_code = 500

        async def send_with_timing(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = MutableHeaders(scope=message)
                headers.append("X-Process-Time", str(time.perf_counter() - start_time))
            await send(message)

        try:
            await self.app(scope, receive, send_with_timing)
        except Exception:
            structlog.stdlib.get_logger("api.error").exception("Uncaught exception")
            raise
        finally:
            process_time = time.perf_counter() - start_time
            url = get_path_with_query_string(scope)  # type: ignore
            http_method = scope["method"]
            http_version = scope["http_version"]
            client = scope.get("client")
            access_logger.info(
                f""""{http_method} {url} HTTP/{http_version}" {status_code}""",
                http={
                    "url": url,
                    "status_code": status_code,
                    "method": http_method,
                    "request_id": request_id,
                    "version": http_version,
                    "client": client[0] if client else None,
                },
                duration=process_time,
            )
