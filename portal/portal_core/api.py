"""
ApiClient — the authenticated request pipeline.

Every call is attempt → (401 with a token? refresh once) → retry once.
The retry is a second explicit attempt, never a recursive send(), so a
server that keeps answering 401 costs exactly two requests and one refresh.

Responses use the envelope `{success, data?, error?: {code, message}}`.
Success unwraps `data`; anything else raises ApiError. Only 401 is handled
here; retrying other failures is the caller's business (see ActivityQueue).
"""

import requests

from .config import log
from .constants import API_TIMEOUT_SEC
from .errors import ApiError, AuthRequiredError, ErrorCode, code_for_status
from .http_client import create_session

ACTIVITIES_PATH = "/activities"


class ApiClient:
    def __init__(self, config, session_manager, http=None):
        self._base_url = config["apiBaseUrl"].rstrip("/")
        self._timeout = config.get("requestTimeoutSec", API_TIMEOUT_SEC)
        self._sessions = session_manager
        self._http = http or create_session()

    @property
    def base_url(self):
        return self._base_url

    def send(self, method, path, body=None, params=None):
        """Issue a request and return the envelope's `data`. Raises ApiError."""
        token = self._sessions.token
        resp = self._attempt(method, path, body, params, token)

        if resp.status_code == 401 and token:
            log.info("%s %s → 401, refreshing session", method, path)
            try:
                session = self._sessions.refresh(failed_token=token)
            except ApiError as e:
                log.warning("%s %s abandoned: %s", method, path, e.message)
                raise AuthRequiredError("Session expired") from e
            resp = self._attempt(method, path, body, params, session.token)
            if resp.status_code == 401:
                log.error("%s %s → 401 again after refresh", method, path)
                raise AuthRequiredError("Request rejected after session refresh")

        return self._unwrap(method, path, resp)

    def get(self, path, params=None):
        return self.send("GET", path, params=params)

    def post(self, path, body=None):
        return self.send("POST", path, body=body)

    def patch(self, path, body=None):
        return self.send("PATCH", path, body=body)

    def put(self, path, body=None):
        return self.send("PUT", path, body=body)

    def delete(self, path):
        return self.send("DELETE", path)

    def post_activity(self, activity):
        return self.post(ACTIVITIES_PATH, activity.to_payload())

    # ── Internals ────────────────────────────────────────────

    def _attempt(self, method, path, body, params, token):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return self._http.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                json=body,
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            log.warning("%s %s network error: %s", method, path, e)
            raise ApiError(ErrorCode.NETWORK_ERROR, f"Network error: {e}") from e

    @staticmethod
    def _unwrap(method, path, resp):
        status = resp.status_code
        try:
            envelope = resp.json()
        except ValueError:
            envelope = None
        if not isinstance(envelope, dict):
            envelope = None

        ok = 200 <= status < 300
        if ok and envelope is not None and envelope.get("success") is True:
            return envelope.get("data")

        error = (envelope or {}).get("error")
        error = error if isinstance(error, dict) else {}
        message = error.get("message") or "Request failed"
        server_code = error.get("code")

        if status == 401:
            raise AuthRequiredError(message)
        if not ok:
            code = code_for_status(status)
        elif envelope is None:
            code, message = ErrorCode.SERVER_ERROR, "Malformed response body"
        else:
            code = ErrorCode.SERVER_ERROR

        log.warning("%s %s failed: HTTP %d %s — %s", method, path, status, server_code or code, message)
        raise ApiError(code, message, status, server_code)
