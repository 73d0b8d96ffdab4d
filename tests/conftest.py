"""
Shared fixtures: in-memory storage, a scripted HTTP session, a switchable
connectivity stub and ready-made session records. No test touches the network.
"""

import json
import threading
from datetime import timedelta

import pytest
import requests

from portal_core.constants import DEFAULT_CONFIG
from portal_core.state import to_iso, utc_now
from portal_core.storage import MemoryStorage

BASE_URL = "https://api.test/v1"


# ============================================================================
# HTTP double
# ============================================================================

class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        self._body = body
        self._raw = raw

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._raw is not None:
            return json.loads(self._raw)
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


def envelope(data=None, status=200):
    return FakeResponse(status, {"success": True, "data": data})


def failure(status, code="ERROR", message="failed"):
    return FakeResponse(status, {"success": False, "error": {"code": code, "message": message}})


class FakeHttp:
    """
    Minimal requests.Session stand-in. Routes map "METHOD /path" to a handler
    `handler(call) -> FakeResponse` (or raising requests exceptions).
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def route(self, method, path, handler):
        if isinstance(handler, FakeResponse):
            response = handler
            handler = lambda call: response  # noqa: E731
        self.routes[f"{method} {path}"] = handler

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        call = {"method": method, "path": path, "headers": dict(headers or {}), "json": json}
        with self._lock:
            self.calls.append(call)
        handler = self.routes.get(f"{method} {path}")
        if handler is None:
            return FakeResponse(404, {"success": False, "error": {"code": "NOT_FOUND", "message": path}})
        return handler(call)

    def post(self, url, headers=None, json=None, timeout=None):
        return self.request("POST", url, headers=headers, json=json, timeout=timeout)

    def calls_to(self, method, path):
        with self._lock:
            return [c for c in self.calls if c["method"] == method and c["path"] == path]


def network_down(call):
    raise requests.ConnectionError("connection refused")


class Connectivity:
    """Stand-in for ConnectivityMonitor with a settable `online` flag."""

    def __init__(self, online=True):
        self.online = online
        self._handlers = []

    def on_connectivity_restored(self, handler):
        self._handlers.append(handler)
        return lambda: self._handlers.remove(handler)

    def restore(self):
        self.online = True
        for handler in list(self._handlers):
            handler()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config():
    cfg = dict(DEFAULT_CONFIG)
    cfg.update({
        "apiBaseUrl": BASE_URL,
        "trustedOrgId": "adobe-org",
        "redirectUri": "https://portal.test/auth/callback",
        "requestTimeoutSec": 5,
    })
    return cfg


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def connectivity():
    return Connectivity(online=True)


def make_record(token="tok-1", expires_in=timedelta(hours=8), org_id="adobe-org", role="practitioner"):
    return {
        "sessionToken": token,
        "expiresAt": to_iso(utc_now() + expires_in),
        "user": {
            "id": "u-1",
            "email": "ada@example.com",
            "firstName": "Ada",
            "lastName": "Lovelace",
            "role": role,
            "selectedRole": None,
            "imsOrgId": org_id,
        },
        "company": {"id": "c-1", "domain": "example.com", "name": "Example", "industry": "Unknown"},
    }


@pytest.fixture
def session_record():
    return make_record()


def refresh_ok(token="tok-2", expires_in=timedelta(hours=8)):
    return envelope({"sessionToken": token, "expiresAt": to_iso(utc_now() + expires_in)})
