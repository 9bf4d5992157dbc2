# apimanager/executor.py

"""
Request execution on one shared session.

Flow per call:
- Build + validate the URL (GET parameters go into the query string)
- Encode POST parameters as a JSON body
- Run the attempt chain on the worker pool (flat retry count, no delay)
- Deliver InProgress, then exactly one Success/Failed, through the main context

Known gaps kept on purpose (see SessionConfig.strict_* to report them):
- A 200 body that is not JSON delivers no terminal outcome at all
- An unserializable POST mapping is sent without a body
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Dict, Mapping, Optional, Set, Type, Union

import requests

from apimanager.config import SessionConfig, get_settings
from apimanager.errors import APIError, ErrorKind, HttpStatusError, TransportError
from apimanager.models import Failed, InProgress, Outcome, RawJSON, Success, parse_response
from apimanager.signal import MainContext, Signal, main_context
from apimanager.utils.http import HTTPMethod, build_session, build_url, decode_json, encode_body, fetch

log = logging.getLogger(__name__)


class RequestExecutor:
    def __init__(self, config: Optional[SessionConfig] = None, context: Optional[MainContext] = None) -> None:
        self._lock = threading.Lock()
        self.context = context or main_context()
        self.config = config or SessionConfig()
        self.session = build_session(self.config)
        self._pool = self._new_pool(self.config)

        # requests submitted per session; replaced sessions close once theirs drain
        self._live: Dict[requests.Session, int] = {}
        self._retired: Set[requests.Session] = set()

    @staticmethod
    def _new_pool(config: SessionConfig) -> concurrent.futures.ThreadPoolExecutor:
        return concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, config.max_workers),
            thread_name_prefix="apimanager",
        )

    # -----------------------------
    # Configuration
    # -----------------------------
    def update(self, config: SessionConfig) -> None:
        """
        Replace the configuration and rebuild the shared session.

        Requests already issued keep the session they captured; the old
        session is closed once the last of them finishes.
        """
        old_pool = None
        close_now = None
        with self._lock:
            if config.max_workers != self.config.max_workers:
                old_pool = self._pool
                self._pool = self._new_pool(config)

            old_session = self.session
            if self._live.get(old_session):
                self._retired.add(old_session)
            else:
                close_now = old_session

            self.config = config
            self.session = build_session(config)

        if old_pool is not None:
            old_pool.shutdown(wait=False)
        if close_now is not None:
            close_now.close()
        log.info("Session rebuilt: cookies=%s timeout=%s verify_tls=%s",
                 config.accept_cookies, config.timeout, config.verify_tls)

    reconfigure = update

    def close(self) -> None:
        with self._lock:
            pool, session = self._pool, self.session
        pool.shutdown(wait=True)
        session.close()

    def _release(self, session: requests.Session) -> None:
        with self._lock:
            remaining = self._live.get(session, 1) - 1
            if remaining > 0:
                self._live[session] = remaining
                return
            self._live.pop(session, None)
            if session not in self._retired:
                return
            self._retired.discard(session)

        log.debug("Closing replaced session %r", session)
        session.close()

    # -----------------------------
    # Requests
    # -----------------------------
    def request(
        self,
        url: str,
        method: Union[str, HTTPMethod] = HTTPMethod.GET,
        parameters: Optional[Mapping[str, Any]] = None,
        retry_count: int = 0,
        result_type: Type[Any] = RawJSON,
    ) -> Signal[Outcome]:
        signal: Signal[Outcome] = Signal()

        with self._lock:
            strict_encoding = self.config.strict_encoding

        try:
            method = HTTPMethod.coerce(method)
            target = build_url(url, method, parameters)
            body = None if method.is_read_only else encode_body(parameters, strict=strict_encoding)
        except ValueError as e:
            # unknown method name
            self._emit(signal, Failed(APIError(ErrorKind.UNKNOWN, f"unsupported method: {method}", cause=e)))
            return signal
        except APIError as e:
            log.info("Not issuing request: %s", e)
            self._emit(signal, Failed(e))
            return signal

        log.debug("Issuing %s %s retries=%d", method.value, target, retry_count)
        with self._lock:
            session, config = self.session, self.config
            try:
                self._pool.submit(self._run, signal, session, config, method, target, body, retry_count, result_type)
            except RuntimeError as e:
                # pool already shut down by close()
                log.warning("Not issuing %s %s: %s", method.value, target, e)
                self._emit(signal, Failed(APIError(ErrorKind.UNKNOWN, f"executor is closed: {e}", cause=e)))
                return signal
            self._live[session] = self._live.get(session, 0) + 1

        self._emit(signal, InProgress())
        return signal

    def _run(
        self,
        signal: Signal[Outcome],
        session: requests.Session,
        config: SessionConfig,
        method: HTTPMethod,
        url: str,
        body: Optional[bytes],
        retry_count: int,
        result_type: Type[Any],
    ) -> None:
        try:
            outcome = self._execute(session, config, method, url, body, retry_count, result_type)
        except Exception as e:
            log.exception("%s %s: unexpected error", method.value, url)
            outcome = Failed(APIError(ErrorKind.UNKNOWN, str(e), cause=e))
        finally:
            self._release(session)

        if outcome is not None:
            self._emit(signal, outcome)

    def _execute(
        self,
        session: requests.Session,
        config: SessionConfig,
        method: HTTPMethod,
        url: str,
        body: Optional[bytes],
        retry_count: int,
        result_type: Type[Any],
    ) -> Optional[Outcome]:
        try:
            resp = fetch(session, method, url, body=body, timeout=config.timeout, retries=retry_count)
        except HttpStatusError as e:
            log.info("%s %s failed: HTTP %s (%s)", method.value, url, e.status, e.kind.value)
            return Failed(e)
        except APIError as e:
            log.info("%s %s failed: %s", method.value, url, e)
            return Failed(e)
        except requests.RequestException as e:
            log.info("%s %s failed: %s", method.value, url, e)
            return Failed(TransportError(e))

        try:
            payload = decode_json(resp.content)
        except ValueError as e:
            if config.strict_decoding:
                return Failed(APIError(ErrorKind.DECODE_FAILURE, f"body is not JSON: {e}", status=200, cause=e))
            log.warning("%s %s: 200 body is not JSON, no outcome delivered: %s", method.value, url, e)
            return None

        return Success(parse_response(result_type, payload))

    def _emit(self, signal: Signal[Outcome], outcome: Outcome) -> None:
        self.context.dispatch(signal.fire, outcome)


# -----------------------------
# Shared instance
# -----------------------------

_SHARED: Optional[RequestExecutor] = None
_SHARED_LOCK = threading.Lock()


def shared() -> RequestExecutor:
    global _SHARED
    with _SHARED_LOCK:
        if _SHARED is None:
            _SHARED = RequestExecutor(get_settings().session)
        return _SHARED


def update(config: SessionConfig) -> None:
    shared().update(config)


def request(
    url: str,
    method: Union[str, HTTPMethod] = HTTPMethod.GET,
    parameters: Optional[Mapping[str, Any]] = None,
    retry_count: int = 0,
    result_type: Type[Any] = RawJSON,
) -> Signal[Outcome]:
    return shared().request(url, method, parameters, retry_count, result_type)
