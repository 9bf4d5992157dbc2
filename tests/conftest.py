"""Shared fixtures: a private delivery context and a scripted transport."""

import json
import sys
from pathlib import Path

import pytest
import requests

# Ensure the package root is importable when tests are executed from the tests directory.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from apimanager.config import SessionConfig  # noqa: E402
from apimanager.executor import RequestExecutor  # noqa: E402
from apimanager.signal import MainContext  # noqa: E402


def make_response(status, body=b""):
    resp = requests.Response()
    resp.status_code = status
    if isinstance(body, (bytes, type(None))):
        resp._content = body
    else:
        resp._content = json.dumps(body).encode("utf-8")
    return resp


class ScriptedTransport:
    """Stands in for requests.Session.request, replaying prepared results in order."""

    def __init__(self):
        self.results = []
        self.calls = []

    def queue(self, *results):
        self.results.extend(results)

    def __call__(self, session, method, url, **kwargs):
        self.calls.append({"session": session, "method": method, "url": url, **kwargs})
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def transport(monkeypatch):
    fake = ScriptedTransport()

    def _request(self, method, url, **kwargs):
        return fake(self, method, url, **kwargs)

    monkeypatch.setattr(requests.Session, "request", _request)
    return fake


@pytest.fixture
def context():
    ctx = MainContext(name="test-main")
    yield ctx
    ctx.shutdown()


@pytest.fixture
def executor(context):
    ex = RequestExecutor(SessionConfig(), context)
    yield ex
    ex.close()
