"""Registry proxy package for Docker Registry v2 API.

This package relays registry requests to an upstream registry, completing
the Bearer token handshake and redirect chain on behalf of the client.
"""

from .auth import (
    AuthChallengeHandler,
    RealmRegistry,
    parse_challenge,
    render_challenge,
)
from .errors import (
    ChallengeError,
    IncompleteParams,
    InvalidTargetURL,
    NetworkError,
    NoTokenInResponse,
    RedirectError,
    RelayError,
    SpoolError,
    TokenEndpointError,
    TooManyRedirects,
)
from .forwarder import RequestForwarder, SpooledBody, spool_request_body
from .headers import prepare_headers
from .redirects import is_redirect, resolve_redirect
from .relay import RelayEngine
from .streaming import stream_response
from .token_cache import TokenCache
from .types import AuthChallenge, CachedToken, ProxyRequest, RelayConfig

__all__ = [
    # Engine
    "RelayEngine",
    "RequestForwarder",
    "AuthChallengeHandler",
    "RealmRegistry",
    "TokenCache",
    # Types
    "AuthChallenge",
    "CachedToken",
    "ProxyRequest",
    "RelayConfig",
    "SpooledBody",
    # Errors
    "RelayError",
    "NetworkError",
    "InvalidTargetURL",
    "RedirectError",
    "TooManyRedirects",
    "SpoolError",
    "ChallengeError",
    "IncompleteParams",
    "TokenEndpointError",
    "NoTokenInResponse",
    # Utilities
    "parse_challenge",
    "render_challenge",
    "prepare_headers",
    "is_redirect",
    "resolve_redirect",
    "spool_request_body",
    "stream_response",
]
