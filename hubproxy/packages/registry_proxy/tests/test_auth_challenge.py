import httpx
import pytest

from hubproxy.packages.registry_proxy.auth import (
    AuthChallengeHandler,
    RealmRegistry,
    parse_challenge,
    parse_challenge_params,
)
from hubproxy.packages.registry_proxy.errors import (
    IncompleteParams,
    NetworkError,
    NoTokenInResponse,
    TokenEndpointError,
)
from hubproxy.packages.registry_proxy.token_cache import TokenCache
from hubproxy.packages.registry_proxy.types import AuthChallenge
from hubproxy.tests.fixtures_clients import ALPINE_CHALLENGE, AUTH_REALM, FakeUpstream

from .test_token_cache import FakeClock

# --- Parsing ---


def test_parse_challenge_extracts_quoted_values():
    challenge = parse_challenge(
        'Bearer realm="https://auth.example.com/token",'
        'service="registry.example.com",'
        'scope="repository:lib/x:pull"'
    )

    assert challenge == AuthChallenge(
        realm="https://auth.example.com/token",
        service="registry.example.com",
        scope="repository:lib/x:pull",
    )
    assert challenge.cache_key == (
        "https://auth.example.com/token:registry.example.com:repository:lib/x:pull"
    )


def test_parse_challenge_without_scope():
    challenge = parse_challenge('Bearer realm="https://auth.docker.io/token",service="registry.docker.io"')

    assert challenge.scope == ""


def test_parse_tolerates_whitespace_and_skips_segments_without_equals():
    params = parse_challenge_params(
        'Bearer realm = "https://auth.example.com/token" , garbage, service= "svc" '
    )

    assert params == {"realm": "https://auth.example.com/token", "service": "svc"}


def test_parse_keeps_commas_inside_quoted_scope():
    challenge = parse_challenge(
        'Bearer realm="https://auth.example.com/token",service="svc",'
        'scope="repository:team/app:pull,push"'
    )

    assert challenge.scope == "repository:team/app:pull,push"


def test_parse_unquoted_values():
    params = parse_challenge_params("Bearer realm=https://auth.example.com/token,service=svc")

    assert params["realm"] == "https://auth.example.com/token"
    assert params["service"] == "svc"


@pytest.mark.parametrize(
    "header, missing",
    [
        ('Bearer realm="https://auth.example.com/token"', ["service"]),
        ('Bearer service="svc"', ["realm"]),
        ('Bearer realm="",service="svc"', ["realm"]),
        ('Bearer realm="https://auth.example.com/token",service=""', ["service"]),
        ("", ["realm", "service"]),
    ],
)
def test_parse_rejects_missing_or_empty_required_params(header, missing):
    with pytest.raises(IncompleteParams) as exc_info:
        parse_challenge(header)

    assert exc_info.value.missing == missing


# --- Token acquisition ---


@pytest.fixture
def handler(http_client: httpx.AsyncClient, token_cache: TokenCache):
    return AuthChallengeHandler(http_client, token_cache)


async def test_resolve_fetches_token_with_service_and_scope(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": "abc123"})

    token = await handler.resolve(ALPINE_CHALLENGE)

    assert token == "abc123"
    calls = upstream.calls("GET", AUTH_REALM)
    assert len(calls) == 1
    assert calls[0].url.params["service"] == "registry.docker.io"
    assert calls[0].url.params["scope"] == "repository:library/alpine:pull"


async def test_resolve_omits_scope_when_absent(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": "abc123"})

    await handler.resolve(f'Bearer realm="{AUTH_REALM}",service="registry.docker.io"')

    params = upstream.calls("GET", AUTH_REALM)[0].url.params
    assert params["service"] == "registry.docker.io"
    assert "scope" not in params


async def test_resolve_falls_back_to_access_token(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": "", "access_token": "oauth-xyz"})

    assert await handler.resolve(ALPINE_CHALLENGE) == "oauth-xyz"


async def test_resolve_skips_non_string_token(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": 12345, "access_token": "oauth-xyz"})

    assert await handler.resolve(ALPINE_CHALLENGE) == "oauth-xyz"


async def test_resolve_rejects_non_string_tokens(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": {"value": "x"}, "access_token": ["y"]})

    with pytest.raises(NoTokenInResponse):
        await handler.resolve(ALPINE_CHALLENGE)


async def test_resolve_without_any_token_field(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"expires_in": 300})

    with pytest.raises(NoTokenInResponse):
        await handler.resolve(ALPINE_CHALLENGE)


async def test_resolve_with_non_json_body(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, content=b"<html>oops</html>")

    with pytest.raises(NoTokenInResponse):
        await handler.resolve(ALPINE_CHALLENGE)


async def test_resolve_with_token_endpoint_error(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, status_code=403, json={"details": "denied"})

    with pytest.raises(TokenEndpointError) as exc_info:
        await handler.resolve(ALPINE_CHALLENGE)

    assert exc_info.value.status_code == 403


async def test_resolve_with_incomplete_challenge_makes_no_call(handler, upstream: FakeUpstream):
    with pytest.raises(IncompleteParams):
        await handler.resolve(f'Bearer realm="{AUTH_REALM}"')

    assert upstream.requests == []


async def test_resolve_network_failure(handler, upstream: FakeUpstream):
    upstream.error = httpx.ConnectError("connection refused")

    with pytest.raises(NetworkError):
        await handler.resolve(ALPINE_CHALLENGE)


# --- Caching ---


async def test_identical_challenges_share_one_fetch(handler, upstream: FakeUpstream, token_cache):
    upstream.add("GET", AUTH_REALM, json={"token": "abc123"})

    first = await handler.resolve(ALPINE_CHALLENGE)
    second = await handler.resolve(ALPINE_CHALLENGE)

    assert first == second == "abc123"
    assert len(upstream.calls("GET", AUTH_REALM)) == 1
    assert token_cache.get(parse_challenge(ALPINE_CHALLENGE).cache_key) == "abc123"


async def test_different_scope_fetches_again(handler, upstream: FakeUpstream):
    upstream.add("GET", AUTH_REALM, json={"token": "alpine-token"})
    upstream.add("GET", AUTH_REALM, json={"token": "busybox-token"})

    await handler.resolve(ALPINE_CHALLENGE)
    token = await handler.resolve(ALPINE_CHALLENGE.replace("alpine", "busybox"))

    assert token == "busybox-token"
    assert len(upstream.calls("GET", AUTH_REALM)) == 2


async def test_expired_token_is_fetched_again(http_client, upstream: FakeUpstream):
    clock = FakeClock()
    handler = AuthChallengeHandler(http_client, TokenCache(default_ttl=300, clock=clock))
    upstream.add("GET", AUTH_REALM, json={"token": "first"})
    upstream.add("GET", AUTH_REALM, json={"token": "second"})

    assert await handler.resolve(ALPINE_CHALLENGE) == "first"
    clock.advance(300)
    assert await handler.resolve(ALPINE_CHALLENGE) == "second"
    assert len(upstream.calls("GET", AUTH_REALM)) == 2


async def test_expires_in_from_token_response_is_preferred(http_client, upstream: FakeUpstream):
    clock = FakeClock()
    handler = AuthChallengeHandler(http_client, TokenCache(default_ttl=300, clock=clock))
    upstream.add("GET", AUTH_REALM, json={"token": "short-lived", "expires_in": 60})
    upstream.add("GET", AUTH_REALM, json={"token": "renewed", "expires_in": 60})

    await handler.resolve(ALPINE_CHALLENGE)
    clock.advance(61)

    assert await handler.resolve(ALPINE_CHALLENGE) == "renewed"


# --- Realm registry ---


def test_realm_registry_falls_back_to_default():
    realms = RealmRegistry(AUTH_REALM)

    assert realms.lookup("ghcr.io") == AUTH_REALM
    assert realms.lookup(None) == AUTH_REALM


def test_realm_registry_remembers_by_service():
    realms = RealmRegistry(AUTH_REALM)
    realms.remember(AuthChallenge(realm="https://ghcr.io/token", service="ghcr.io"))

    assert realms.lookup("ghcr.io") == "https://ghcr.io/token"
    assert realms.lookup("registry.docker.io") == AUTH_REALM
