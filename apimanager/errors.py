from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_URL = "invalid_url"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    REDIRECTION = "redirection"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
    DECODE_FAILURE = "decode_failure"
    ENCODE_FAILURE = "encode_failure"


class APIError(RuntimeError):
    """Terminal failure delivered through ``Failed(error)``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.status = status
        self.cause = cause


class TransportError(APIError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(ErrorKind.TRANSPORT, f"transport error: {cause}", cause=cause)


class HttpStatusError(APIError):
    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(kind_for_status(status), f"HTTP {status}: {body[:300]}", status=status)
        self.body = body


def kind_for_status(status: int) -> ErrorKind:
    # Only 200 counts as success, so 201..299 end up as UNKNOWN.
    if 300 <= status <= 399:
        return ErrorKind.REDIRECTION
    if 400 <= status <= 499:
        return ErrorKind.CLIENT_ERROR
    if 500 <= status <= 599:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN
