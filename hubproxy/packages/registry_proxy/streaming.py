"""Delivery of the terminal upstream response to the client."""

from typing import AsyncIterator, Optional

import httpx
import structlog
from fastapi.responses import StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from .auth import (
    RealmRegistry,
    parse_challenge,
    parse_challenge_params,
    render_challenge,
)
from .errors import IncompleteParams
from .headers import HOP_BY_HOP_HEADERS

logger = structlog.stdlib.get_logger(__name__)

CHUNK_SIZE = 65536
PROXY_TOKEN_PATH = "/auth/token"


def rewrite_challenge(
    value: str,
    proxy_host: str,
    realms: Optional[RealmRegistry] = None,
) -> str:
    """Point a Bearer challenge at the proxy's own token endpoint.

    Only the realm is replaced; service, scope, error and any other
    parameters are kept in order. Challenges that are not Bearer or lack
    realm/service are returned unchanged.
    """
    if not value.startswith("Bearer ") or not proxy_host:
        return value

    try:
        challenge = parse_challenge(value)
    except IncompleteParams:
        return value

    if realms is not None:
        realms.remember(challenge)

    params = parse_challenge_params(value)
    params["realm"] = f"https://{proxy_host}{PROXY_TOKEN_PATH}"
    return render_challenge(params)


def response_headers(
    response: httpx.Response,
    proxy_host: str,
    realms: Optional[RealmRegistry] = None,
) -> list[tuple[str, str]]:
    """Copy upstream headers for the client, duplicates preserved."""
    headers = []
    for raw_name, raw_value in response.headers.raw:
        lowered = raw_name.decode("latin-1").lower()
        value = raw_value.decode("latin-1")
        if lowered in HOP_BY_HOP_HEADERS:
            continue
        if lowered == "www-authenticate":
            rewritten = rewrite_challenge(value, proxy_host, realms)
            if rewritten != value:
                logger.debug(
                    "Rewrote WWW-Authenticate header",
                    original=value,
                    rewritten=rewritten,
                )
            value = rewritten
        headers.append((lowered, value))
    return headers


class RelayedResponse(StreamingResponse):
    """StreamingResponse that always releases the upstream response.

    Once the status line is out nothing can be retried, so a client that
    goes away mid-body is logged and the transfer abandoned.
    """

    def __init__(self, upstream: httpx.Response, headers: list[tuple[str, str]]):
        super().__init__(
            content=self._body(upstream),
            status_code=upstream.status_code,
        )
        self.upstream = upstream
        self.raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1")) for name, value in headers
        ]

    async def _body(self, upstream: httpx.Response) -> AsyncIterator[bytes]:
        written = 0
        try:
            async for chunk in upstream.aiter_raw(chunk_size=CHUNK_SIZE):
                written += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            logger.error(
                "Upstream body stream failed",
                error=str(e),
                target_url=str(upstream.request.url),
                bytes_written=written,
            )
            return

        logger.debug(
            "Wrote response",
            status_code=upstream.status_code,
            bytes_written=written,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect) as e:
            logger.warning(
                "Client write failed, abandoning response",
                error=str(e),
                status_code=self.status_code,
            )
        finally:
            await self.upstream.aclose()


def stream_response(
    upstream: httpx.Response,
    proxy_host: str,
    realms: Optional[RealmRegistry] = None,
) -> RelayedResponse:
    """Wrap the terminal upstream response for delivery to the client.

    Args:
        upstream: Open streaming response returned by the relay engine
        proxy_host: Host the client used to reach the proxy
        realms: Registry that records upstream realms replaced in challenges

    Returns:
        Response that streams the raw upstream body and closes it afterwards
    """
    return RelayedResponse(upstream, response_headers(upstream, proxy_host, realms))
