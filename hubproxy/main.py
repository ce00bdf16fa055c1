from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, status

from hubproxy.packages.registry_proxy import (
    RelayConfig,
    RelayEngine,
    RelayError,
    TokenCache,
)
from hubproxy.routes import disguise, health, registry_proxy
from hubproxy.settings import settings
from hubproxy.utils.logging import setup_logger
from hubproxy.utils.response_helpers import docker_error_response
from hubproxy.utils.sentry import init_sentry

logger = structlog.stdlib.get_logger(__name__)


def relay_config_from_settings() -> RelayConfig:
    return RelayConfig(
        upstream_host=settings.UPSTREAM_REGISTRY_HOST,
        upstream_scheme=settings.UPSTREAM_SCHEME,
        auth_realm=settings.UPSTREAM_AUTH_REALM,
        max_redirects=settings.MAX_REDIRECTS,
        spool_max_memory=settings.BODY_SPOOL_MAX_MEMORY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT),
        follow_redirects=False,
    ) as client:
        app.state.relay_engine = RelayEngine(
            client=client,
            token_cache=TokenCache(default_ttl=settings.TOKEN_TTL_SECONDS),
            config=relay_config_from_settings(),
        )
        logger.info(
            "Relay engine ready",
            upstream_host=settings.UPSTREAM_REGISTRY_HOST,
            disguise=settings.DISGUISE_URL,
        )

        yield


init_sentry()
app = FastAPI(
    title="HubP",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)
setup_logger(app)


@app.exception_handler(RelayError)
async def relay_exception_handler(request: Request, exc: RelayError):
    logger.error(
        "Relay failed",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return docker_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="UNKNOWN",
        message="internal server error",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", method=request.method, path=request.url.path)
    return docker_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="UNKNOWN",
        message="internal server error",
    )


app.include_router(health.router)
app.include_router(registry_proxy.router)
# Catch-all; must stay last
app.include_router(disguise.router)
