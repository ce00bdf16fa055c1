"""Bearer challenge handling for Docker Registry v2 token auth.

See: https://distribution.github.io/distribution/spec/auth/token/
"""

import threading
from typing import Optional

import httpx
import structlog

from .errors import (
    IncompleteParams,
    NetworkError,
    NoTokenInResponse,
    TokenEndpointError,
)
from .token_cache import TokenCache
from .types import AuthChallenge

logger = structlog.stdlib.get_logger(__name__)

BEARER_PREFIX = "Bearer "


def _split_params(value: str) -> list[str]:
    """Split on commas that sit outside double quotes."""
    segments = []
    current = []
    quoted = False
    for char in value:
        if char == '"':
            quoted = not quoted
        if char == "," and not quoted:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
    segments.append("".join(current))
    return segments


def parse_challenge_params(header: str) -> dict[str, str]:
    """Parse a WWW-Authenticate header into its key/value parameters.

    Segments without "=" are skipped. Values lose surrounding whitespace and
    one pair of double quotes.
    """
    params: dict[str, str] = {}
    if header.startswith(BEARER_PREFIX):
        header = header[len(BEARER_PREFIX) :]

    for segment in _split_params(header):
        segment = segment.strip()
        if "=" not in segment:
            continue

        key, value = segment.split("=", 1)
        value = value.strip()
        if value.startswith('"'):
            value = value[1:]
        if value.endswith('"'):
            value = value[:-1]
        params[key.strip()] = value

    return params


def render_challenge(params: dict[str, str]) -> str:
    """Render parameters back into a Bearer WWW-Authenticate value."""
    return BEARER_PREFIX + ",".join(f'{key}="{value}"' for key, value in params.items())


def parse_challenge(header: str) -> AuthChallenge:
    """Parse and validate a Bearer challenge.

    Raises:
        IncompleteParams: realm or service is missing or empty
    """
    params = parse_challenge_params(header)
    missing = [name for name in ("realm", "service") if not params.get(name)]
    if missing:
        raise IncompleteParams(missing)

    return AuthChallenge(
        realm=params["realm"],
        service=params["service"],
        scope=params.get("scope", ""),
    )


class RealmRegistry:
    """Upstream token realms seen per service.

    Clients are handed a challenge that points at the proxy; when they come
    back for a token the proxy needs the upstream realm it replaced.
    """

    def __init__(self, default_realm: str):
        self.default_realm = default_realm
        self._realms: dict[str, str] = {}
        self._lock = threading.Lock()

    def remember(self, challenge: AuthChallenge) -> None:
        with self._lock:
            self._realms[challenge.service] = challenge.realm

    def lookup(self, service: Optional[str]) -> str:
        with self._lock:
            return self._realms.get(service or "", self.default_realm)


class AuthChallengeHandler:
    def __init__(self, client: httpx.AsyncClient, cache: TokenCache):
        self.client = client
        self.cache = cache

    async def resolve(self, header: str) -> str:
        """Exchange a WWW-Authenticate challenge for a bearer token.

        Args:
            header: Raw WWW-Authenticate value from the upstream 401

        Returns:
            Bearer token, from cache when still valid

        Raises:
            ChallengeError: the challenge cannot be completed; callers
                            should pass the original 401 through
            NetworkError: the token realm could not be reached
        """
        challenge = parse_challenge(header)
        cache_key = challenge.cache_key

        token = self.cache.get(cache_key)
        if token:
            return token

        logger.debug(
            "Fetching new token",
            realm=challenge.realm,
            service=challenge.service,
            scope=challenge.scope,
        )
        token, ttl = await self._fetch_token(challenge)
        self.cache.put(cache_key, token, ttl)
        return token

    async def _fetch_token(self, challenge: AuthChallenge) -> tuple[str, Optional[float]]:
        params = {"service": challenge.service}
        if challenge.scope:
            params["scope"] = challenge.scope

        try:
            response = await self.client.get(challenge.realm, params=params)
        except httpx.InvalidURL as e:
            raise NetworkError(f"Invalid token realm {challenge.realm!r}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Token request to {challenge.realm} failed: {e}") from e

        if response.status_code != 200:
            raise TokenEndpointError(response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise NoTokenInResponse("Token response is not valid JSON") from e

        if not isinstance(payload, dict):
            raise NoTokenInResponse("Token response is not a JSON object")

        token = payload.get("token")
        if not isinstance(token, str) or not token:
            token = payload.get("access_token")
        if not isinstance(token, str) or not token:
            raise NoTokenInResponse("Token response has no token or access_token")

        # Prefer the lifetime the token endpoint states over the default TTL
        expires_in = payload.get("expires_in")
        ttl = None
        if isinstance(expires_in, int) and not isinstance(expires_in, bool):
            if expires_in > 0:
                ttl = float(expires_in)

        return token, ttl
