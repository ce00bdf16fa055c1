"""Docker Registry v2 API relay.

Every request under the registry prefix is forwarded to the upstream
registry. The relay completes the token handshake and redirect chain, so
clients talk to the proxy exactly as they would to the registry itself.

See: https://distribution.github.io/distribution/spec/api/
"""

from typing import Optional

import httpx
import structlog
from fastapi import APIRouter, Request, Response
from starlette.requests import ClientDisconnect

from hubproxy.deps.relay import RelayEngineDep
from hubproxy.packages.registry_proxy import (
    ProxyRequest,
    RelayEngine,
    spool_request_body,
    stream_response,
)
from hubproxy.settings import settings
from hubproxy.utils.disconnect import ClientDisconnected, run_until_disconnected

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(tags=["Registry Proxy"])

RELAYED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Not a standard status; the client is gone and never sees it
CLIENT_CLOSED_REQUEST = 499


def request_target(request: Request) -> str:
    """Path and query of the inbound request, exactly as received."""
    raw_path: Optional[bytes] = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


async def relay_request(
    request: Request,
    relay: RelayEngine,
    target_url: Optional[str] = None,
    authenticate: bool = True,
    remember_realms: bool = False,
) -> Response:
    """Spool, relay and stream back one inbound request.

    Args:
        request: Inbound FastAPI request
        relay: Engine holding the shared HTTP client and token cache
        target_url: Explicit upstream URL; defaults to the registry host
        authenticate: Whether upstream 401 challenges are answered
        remember_realms: Record the realms of challenges served by the
                         registry host, for later /auth/token requests

    Raises:
        RelayError: upstream or spool failure, mapped to a 500 by the app
    """
    proxy_host = request.headers.get("host", "")

    try:
        async with spool_request_body(
            request.method, request.stream(), relay.config.spool_max_memory
        ) as body:
            proxy_request = ProxyRequest(
                method=request.method,
                target=request_target(request),
                headers=httpx.Headers(request.headers.raw),
                body=body,
            )
            upstream = await run_until_disconnected(
                request,
                relay.relay(
                    proxy_request,
                    target_url=target_url,
                    authenticate=authenticate,
                ),
            )
    except (ClientDisconnect, ClientDisconnected):
        logger.info("Client went away before the relay finished", method=request.method)
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    # Realms from other hosts (CDNs, the disguise site) must never decide
    # where /auth/token sends client credentials.
    realms = None
    if remember_realms and relay.is_upstream(upstream):
        realms = relay.realms

    return stream_response(upstream, proxy_host, realms)


@router.api_route(
    f"{settings.REGISTRY_PATH_PREFIX}/{{path:path}}",
    methods=RELAYED_METHODS,
)
async def relay_registry_request(request: Request, relay: RelayEngineDep):
    """Relay a registry API call (manifests, blobs, uploads, tags, catalog)."""
    logger.debug(
        "Registry request",
        method=request.method,
        path=request.url.path,
    )
    return await relay_request(request, relay, remember_realms=True)


@router.get("/auth/token")
async def relay_token_request(request: Request, relay: RelayEngineDep):
    """Token endpoint advertised in rewritten WWW-Authenticate challenges.

    The query (service, scope, account, ...) is passed verbatim to the
    upstream realm that was replaced for this service.
    """
    realm = relay.realms.lookup(request.query_params.get("service"))
    query = request.scope.get("query_string", b"").decode("latin-1")
    target_url = realm
    if query:
        target_url += ("&" if "?" in realm else "?") + query

    logger.info("Relaying token request", realm=realm)
    return await relay_request(
        request, relay, target_url=target_url, authenticate=False
    )
