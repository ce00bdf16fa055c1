"""Header filtering for requests relayed to the registry."""

from typing import Optional

import httpx

# Headers scoped to a single connection; never forwarded in either direction.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-connection",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


def prepare_headers(
    inbound: httpx.Headers,
    upstream_host: str,
    token: Optional[str] = None,
) -> httpx.Headers:
    """Build the header set for an upstream request.

    Args:
        inbound: Headers received from the client
        upstream_host: Host being contacted on this hop
        token: Bearer token to attach, if one was obtained

    Returns:
        New header multimap; the inbound headers are left untouched
    """
    items = [
        (key, value)
        for key, value in inbound.multi_items()
        if key.lower() not in HOP_BY_HOP_HEADERS
        and key.lower() not in ("accept-encoding", "host")
    ]
    headers = httpx.Headers(items)
    headers["Host"] = upstream_host

    if token:
        headers["Authorization"] = f"Bearer {token}"

    return headers
