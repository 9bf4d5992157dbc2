import json

import pytest

from apimanager.config import SessionConfig
from apimanager.errors import APIError, ErrorKind
from apimanager.utils.http import (
    BlockAllCookies,
    HTTPMethod,
    build_query,
    build_session,
    build_url,
    decode_json,
    encode_body,
)


def test_build_query_joins_pairs_without_encoding():
    query = build_query({"q": "a b", "page": 2})
    assert sorted(query.split("&")) == ["page=2", "q=a b"]


def test_get_parameters_replace_existing_query():
    url = build_url("https://api.example.com/items?old=1", HTTPMethod.GET, {"limit": 10, "sort": "name"})
    base, _, query = url.partition("?")
    assert base == "https://api.example.com/items"
    assert sorted(query.split("&")) == ["limit=10", "sort=name"]


def test_post_parameters_leave_url_untouched():
    url = "https://api.example.com/items?keep=1"
    assert build_url(url, HTTPMethod.POST, {"a": 1}) == url


def test_get_without_parameters_keeps_url():
    assert build_url("http://localhost:8080/ping", HTTPMethod.GET) == "http://localhost:8080/ping"


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "example.com/path",
        "ftp://example.com/file",
        "http://",
        "https://exa mple.com/",
        "http://example.com:port/",
        "http://example.com/\npath",
    ],
)
def test_invalid_urls_are_rejected(url):
    with pytest.raises(APIError) as exc:
        build_url(url, HTTPMethod.GET)
    assert exc.value.kind is ErrorKind.INVALID_URL


def test_query_characters_are_escaped_not_rejected():
    url = build_url("https://example.com/search", HTTPMethod.GET, {"q": "two words", "tag": "a#b"})
    assert url == "https://example.com/search?q=two%20words&tag=a%23b"

    url = build_url("https://example.com/", HTTPMethod.GET, {"city": "Zürich", "filter": "a=b"})
    assert url == "https://example.com/?city=Z%C3%BCrich&filter=a=b"


def test_bad_base_url_still_rejected_with_parameters():
    with pytest.raises(APIError) as exc:
        build_url("https://exa mple.com/", HTTPMethod.GET, {"q": "x"})
    assert exc.value.kind is ErrorKind.INVALID_URL


def test_encode_body_is_json_of_mapping():
    params = {"name": "widget", "count": 3, "tags": ["a", "b"]}
    assert json.loads(encode_body(params)) == params
    assert encode_body(None) is None


def test_encode_body_swallows_unserializable_values():
    assert encode_body({"when": object()}) is None
    assert encode_body({"x": float("nan")}) is None


def test_encode_body_strict_reports_failure():
    with pytest.raises(APIError) as exc:
        encode_body({"when": object()}, strict=True)
    assert exc.value.kind is ErrorKind.ENCODE_FAILURE


def test_decode_json_accepts_fragments():
    assert decode_json(b'"hello"') == "hello"
    assert decode_json(b"42") == 42
    assert decode_json(b"[1, 2]") == [1, 2]
    with pytest.raises(ValueError):
        decode_json(b"<html></html>")
    with pytest.raises(ValueError):
        decode_json(b"")


def test_method_coercion():
    assert HTTPMethod.coerce("get") is HTTPMethod.GET
    assert HTTPMethod.coerce(HTTPMethod.POST) is HTTPMethod.POST
    assert HTTPMethod.GET.is_read_only
    assert not HTTPMethod.POST.is_read_only
    with pytest.raises(ValueError):
        HTTPMethod.coerce("PATCH")


def test_session_blocks_cookies_by_default():
    session = build_session(SessionConfig())
    assert isinstance(session.cookies._policy, BlockAllCookies)

    policy = BlockAllCookies()
    assert policy.set_ok(None, None) is False
    assert policy.return_ok(None, None) is False


def test_session_applies_transport_options():
    config = SessionConfig(
        accept_cookies=True,
        verify_tls=False,
        headers={"User-Agent": "probe/1.0"},
        proxies={"https": "http://proxy.local:3128"},
    )
    session = build_session(config)
    assert not isinstance(session.cookies._policy, BlockAllCookies)
    assert session.verify is False
    assert session.headers["User-Agent"] == "probe/1.0"
    assert session.proxies["https"] == "http://proxy.local:3128"
