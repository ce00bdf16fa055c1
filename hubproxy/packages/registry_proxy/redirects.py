from urllib.parse import urljoin, urlsplit

from .errors import RedirectError

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})


def is_redirect(status_code: int) -> bool:
    return status_code in REDIRECT_STATUS_CODES


def resolve_redirect(current_url: str, location: str) -> str:
    """Resolve a Location header against the URL that produced it.

    Absolute locations are returned verbatim; relative ones follow RFC 3986
    reference resolution.

    Raises:
        RedirectError: the result is not an absolute http(s) URL
    """
    try:
        resolved = urljoin(current_url, location.strip())
        parts = urlsplit(resolved)
    except ValueError as e:
        raise RedirectError(f"Malformed redirect location {location!r}: {e}") from e

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise RedirectError(f"Unsupported redirect location {location!r}")

    return resolved
