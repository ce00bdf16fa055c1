"""Registry relay engine.

Drives one inbound request through the upstream exchange:

    INITIAL -> FORWARDED -> [AUTHENTICATING -> RETRIED] -> [REDIRECTING -> FORWARDED] -> DONE

A 401 is answered at most once per relay; a 401 after the token was
attached is terminal. Redirects are followed manually so the bearer token
is re-applied on every hop, up to a fixed ceiling.
"""

from typing import Optional

import httpx
import structlog

from .auth import AuthChallengeHandler, RealmRegistry
from .errors import ChallengeError, TooManyRedirects
from .forwarder import RequestForwarder
from .headers import prepare_headers
from .redirects import is_redirect, resolve_redirect
from .token_cache import TokenCache
from .types import ProxyRequest, RelayConfig

logger = structlog.stdlib.get_logger(__name__)


class RelayEngine:
    def __init__(
        self,
        client: httpx.AsyncClient,
        token_cache: TokenCache,
        config: RelayConfig,
    ):
        self.config = config
        self.forwarder = RequestForwarder(client)
        self.auth = AuthChallengeHandler(client, token_cache)
        self.realms = RealmRegistry(config.auth_realm)

    def is_upstream(self, response: httpx.Response) -> bool:
        """Whether a response was served by the configured registry host."""
        return response.request.url.netloc.decode("ascii") == self.config.upstream_host

    def target_url(self, target: str) -> str:
        """Absolute upstream URL for an inbound path and query."""
        return f"{self.config.upstream_scheme}://{self.config.upstream_host}{target}"

    async def relay(
        self,
        request: ProxyRequest,
        target_url: Optional[str] = None,
        authenticate: bool = True,
    ) -> httpx.Response:
        """Relay a request upstream and return the terminal response.

        Args:
            request: Inbound request with its body already spooled
            target_url: Absolute URL to start from; defaults to the
                        configured registry host plus the request target
            authenticate: Whether a 401 may be answered with a token fetch

        Returns:
            Open streaming response; the caller must close it

        Raises:
            RelayError: network, URL or redirect failure
        """
        url = target_url or self.target_url(request.target)
        token: Optional[str] = None
        redirects = 0

        while True:
            host = httpx.URL(url).netloc.decode("ascii")
            headers = prepare_headers(request.headers, host, token)
            response = await self.forwarder.forward(
                request.method, url, headers, request.body
            )

            try:
                if response.status_code == 401 and authenticate and token is None:
                    token = await self._authenticate(response, url)
                    if token is not None:
                        await response.aclose()
                        continue

                elif is_redirect(response.status_code):
                    next_url = self._next_hop(response, url)
                    if next_url is not None:
                        if redirects >= self.config.max_redirects:
                            raise TooManyRedirects(self.config.max_redirects)
                        await response.aclose()
                        url = next_url
                        redirects += 1
                        continue

            except BaseException:
                await response.aclose()
                raise

            logger.info(
                "Relay finished",
                method=request.method,
                target_url=url,
                status_code=response.status_code,
                redirects=redirects,
                authenticated=token is not None,
            )
            return response

    async def _authenticate(self, response: httpx.Response, url: str) -> Optional[str]:
        """Answer a 401; None means pass the 401 through."""
        challenge = response.headers.get("WWW-Authenticate", "")
        logger.debug("Authentication required, resolving challenge", target_url=url)

        try:
            return await self.auth.resolve(challenge)
        except ChallengeError as e:
            logger.warning(
                "Cannot complete authentication, passing 401 through",
                target_url=url,
                error=str(e),
            )
            return None

    def _next_hop(self, response: httpx.Response, url: str) -> Optional[str]:
        location = response.headers.get("Location")
        if not location:
            logger.debug("Redirect response without Location header", target_url=url)
            return None

        next_url = resolve_redirect(url, location)
        logger.debug(
            "Following redirect",
            status_code=response.status_code,
            location=next_url,
        )
        return next_url
