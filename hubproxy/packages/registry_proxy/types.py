"""Registry proxy types and data structures.

This module contains shared types used across the registry proxy package.
No dependencies on hubproxy.* modules outside this package.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import httpx

if TYPE_CHECKING:
    from .forwarder import SpooledBody

DEFAULT_TOKEN_TTL = 300.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_SPOOL_MAX_MEMORY = 8 * 1024 * 1024
DEFAULT_AUTH_REALM = "https://auth.docker.io/token"


@dataclass
class RelayConfig:
    """Configuration for the upstream registry.

    Attributes:
        upstream_host: Registry API host (e.g., "registry-1.docker.io")
        upstream_scheme: Scheme used to reach the registry, "https" in production
        auth_realm: Token realm assumed before any challenge names one
        max_redirects: Ceiling on redirect hops followed for a single relay
        spool_max_memory: Request bodies larger than this are spooled to disk
    """

    upstream_host: str
    upstream_scheme: str = "https"
    auth_realm: str = DEFAULT_AUTH_REALM
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    spool_max_memory: int = DEFAULT_SPOOL_MAX_MEMORY


@dataclass(frozen=True)
class ProxyRequest:
    """An inbound request as seen by the relay engine.

    Attributes:
        method: HTTP method, forwarded unchanged
        target: Path plus query string (e.g., "/v2/library/alpine/tags/list?n=10")
        headers: Inbound header multimap, duplicates and order preserved
        body: Replayable request body, None for GET/HEAD
    """

    method: str
    target: str
    headers: httpx.Headers
    body: Optional["SpooledBody"] = None


@dataclass(frozen=True)
class AuthChallenge:
    realm: str
    service: str
    scope: str = ""

    @property
    def cache_key(self) -> str:
        return f"{self.realm}:{self.service}:{self.scope}"


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: float
