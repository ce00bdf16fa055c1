import pytest

from hubproxy.packages.registry_proxy.errors import RedirectError
from hubproxy.packages.registry_proxy.redirects import is_redirect, resolve_redirect

BLOB_URL = "https://registry.example.com/v2/x/blobs/sha256:abc"


def test_relative_location_resolves_against_current_host():
    resolved = resolve_redirect(BLOB_URL, "/v2/x/blobs/sha256:abc?redirect=1")

    assert resolved == "https://registry.example.com/v2/x/blobs/sha256:abc?redirect=1"


def test_absolute_location_is_used_verbatim():
    resolved = resolve_redirect(BLOB_URL, "https://cdn.example.com/blob")

    assert resolved == "https://cdn.example.com/blob"


def test_absolute_location_with_signed_query_is_untouched():
    location = "https://cdn.example.com/sha256/ab/abc/data?X-Amz-Signature=a%2Fb&expires=1"

    assert resolve_redirect(BLOB_URL, location) == location


def test_path_relative_location():
    resolved = resolve_redirect(BLOB_URL, "../uploads/123?state=abc")

    assert resolved == "https://registry.example.com/v2/x/uploads/123?state=abc"


def test_scheme_relative_location():
    resolved = resolve_redirect(BLOB_URL, "//cdn.example.com/blob")

    assert resolved == "https://cdn.example.com/blob"


@pytest.mark.parametrize(
    "location",
    [
        "ftp://cdn.example.com/blob",
        "http://[::1",
        "mailto:ops@example.com",
    ],
)
def test_unusable_locations_raise(location):
    with pytest.raises(RedirectError):
        resolve_redirect(BLOB_URL, location)


@pytest.mark.parametrize("status_code", [301, 302, 303, 307, 308])
def test_redirect_statuses(status_code):
    assert is_redirect(status_code)


@pytest.mark.parametrize("status_code", [200, 300, 304, 401, 404])
def test_non_redirect_statuses(status_code):
    assert not is_redirect(status_code)
