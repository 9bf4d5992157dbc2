from __future__ import annotations

import json
import logging
import re
from enum import Enum
from http import cookiejar
from typing import Any, Mapping, Optional, Union
from urllib.parse import SplitResult, quote, urlsplit, urlunsplit

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_none

from apimanager.config import SessionConfig
from apimanager.errors import APIError, ErrorKind, HttpStatusError

log = logging.getLogger(__name__)

_UNSAFE_URL_CHARS = re.compile(r"[\s\x00-\x1f\x7f]")
_SCHEMES = ("http", "https")
_QUERY_SAFE = "&=/?:@!$'()*+,;~%[]"


class HTTPMethod(str, Enum):
    GET = "GET"
    POST = "POST"

    @property
    def is_read_only(self) -> bool:
        return self is HTTPMethod.GET

    @classmethod
    def coerce(cls, value: Union[str, "HTTPMethod"]) -> "HTTPMethod":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


# -----------------------------
# URL + body construction
# -----------------------------

def _split_absolute(url: str) -> SplitResult:
    if not isinstance(url, str) or not url or _UNSAFE_URL_CHARS.search(url):
        raise APIError(ErrorKind.INVALID_URL, f"invalid URL: {url!r}")
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError as e:
        raise APIError(ErrorKind.INVALID_URL, f"invalid URL: {url!r}", cause=e) from e

    if parts.scheme.lower() not in _SCHEMES or not parts.hostname:
        raise APIError(ErrorKind.INVALID_URL, f"not an absolute http(s) URL: {url!r}")
    return parts


def build_query(parameters: Mapping[str, Any]) -> str:
    # Values are rendered exactly as str() gives them; see build_url for escaping.
    return "&".join(f"{key}={value}" for key, value in parameters.items())


def build_url(url: str, method: HTTPMethod, parameters: Optional[Mapping[str, Any]] = None) -> str:
    """
    Validate url and, for read-only methods, replace its query with parameters.

    Only characters a query cannot hold (whitespace, '#', non-ASCII...) are
    percent-escaped; '&' and '=' inside keys or values go out as they are.

    Raises APIError(INVALID_URL) when no absolute http(s) URL can be derived,
    before or after the query is attached.
    """
    parts = _split_absolute(url)
    if not method.is_read_only or parameters is None:
        return url

    query = quote(build_query(parameters), safe=_QUERY_SAFE)
    rebuilt = urlunsplit(parts._replace(query=query))
    reparsed = _split_absolute(rebuilt)
    if reparsed.query != query:
        raise APIError(ErrorKind.INVALID_URL, f"query does not survive URL rebuild: {query!r}")
    return rebuilt


def encode_body(parameters: Optional[Mapping[str, Any]], *, strict: bool = False) -> Optional[bytes]:
    if parameters is None:
        return None
    try:
        return json.dumps(parameters, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        if strict:
            raise APIError(ErrorKind.ENCODE_FAILURE, f"body not JSON serializable: {e}", cause=e) from e
        log.warning("POST body not JSON serializable, sending without body: %s", e)
        return None


def decode_json(content: Optional[bytes]) -> Any:
    # json.loads accepts top-level scalars as well as objects/arrays
    if content is None:
        raise ValueError("response has no body")
    return json.loads(content)


# -----------------------------
# Session
# -----------------------------

class BlockAllCookies(cookiejar.CookiePolicy):
    """Neither store cookies from responses nor send any."""
    netscape = True
    rfc2965 = False
    hide_cookie2 = False

    def set_ok(self, cookie, request):
        return False

    def return_ok(self, cookie, request):
        return False

    def domain_return_ok(self, domain, request):
        return False

    def path_return_ok(self, path, request):
        return False


def build_session(config: SessionConfig) -> requests.Session:
    s = requests.Session()
    if not config.accept_cookies:
        s.cookies.set_policy(BlockAllCookies())
    s.verify = config.verify_tls
    s.headers.update(config.headers)
    s.proxies.update(config.proxies)
    return s


# -----------------------------
# Attempts
# -----------------------------

def _attempt(
    session: requests.Session,
    method: HTTPMethod,
    url: str,
    body: Optional[bytes],
    timeout: Optional[float],
) -> requests.Response:
    # data= keeps requests from adding a Content-Type header
    resp = session.request(method.value, url, data=body, timeout=timeout)

    status = getattr(resp, "status_code", None)
    if not isinstance(status, int):
        raise APIError(ErrorKind.MALFORMED_RESPONSE, f"no HTTP status in response to {method.value} {url}")

    if status != 200:
        raise HttpStatusError(status, resp.text or "")

    return resp


def _log_retry(retry_state: RetryCallState) -> None:
    _, method, url = retry_state.args[:3]
    err = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(f"[RETRY] {method.value} {url} failed attempt={retry_state.attempt_number}: {err}")


def fetch(
    session: requests.Session,
    method: HTTPMethod,
    url: str,
    *,
    body: Optional[bytes] = None,
    timeout: Optional[float] = None,
    retries: int = 0,
) -> requests.Response:
    """
    Perform the request, re-issuing it up to `retries` more times on a
    transport error or a non-200 status. No delay between attempts.

    Returns the 200 response; re-raises the last error otherwise.
    """
    retrying = Retrying(
        wait=wait_none(),
        stop=stop_after_attempt(max(0, retries) + 1),
        retry=retry_if_exception_type((requests.RequestException, HttpStatusError)),
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(_attempt, session, method, url, body, timeout)
