"""Registry proxy error types.

Only infrastructure failures (network, spool, URL handling) are meant to reach
the HTTP layer. ChallengeError subclasses are caught by the relay engine and
turned into a pass-through of the upstream 401.
"""


class RelayError(Exception):
    """Base class for failures that abort a relay."""


class NetworkError(RelayError):
    """Transport-level failure talking to the registry or the token realm."""


class InvalidTargetURL(RelayError):
    """An upstream URL could not be used to build a request."""


class RedirectError(RelayError):
    """A redirect Location could not be resolved."""


class TooManyRedirects(RedirectError):
    def __init__(self, max_redirects: int):
        super().__init__(f"Exceeded {max_redirects} redirect hops")
        self.max_redirects = max_redirects


class SpoolError(RelayError):
    """The inbound request body could not be spooled for replay."""


class ChallengeError(Exception):
    """Authentication challenge could not be exchanged for a token."""


class IncompleteParams(ChallengeError):
    def __init__(self, missing: list[str]):
        super().__init__(f"Challenge is missing {', '.join(missing)}")
        self.missing = missing


class TokenEndpointError(ChallengeError):
    def __init__(self, status_code: int):
        super().__init__(f"Token endpoint returned status {status_code}")
        self.status_code = status_code


class NoTokenInResponse(ChallengeError):
    """Token endpoint answered 200 without a usable token."""
