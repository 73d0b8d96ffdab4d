"""
SessionManager — owns the login / refresh / logout lifecycle.

State machine: ANONYMOUS → AUTHENTICATED (login, restore) → REFRESHING →
AUTHENTICATED | ANONYMOUS. Every in-memory mutation happens under one lock
and is written through to the TokenStore before the lock is released, so the
durable record never disagrees with what other threads observe.

Refresh is single-flight: the first caller performs POST /auth/refresh, every
concurrent caller waits for that same call and receives its outcome
(success or the same failure).
"""

import threading

import requests

from .config import log
from .constants import API_TIMEOUT_SEC
from .errors import ApiError, AuthRequiredError, ErrorCode, RefreshFailedError
from .http_client import create_session
from .listeners import Signal
from .state import AuthState, Session, parse_iso, utc_now


class _RefreshCall:
    """The in-flight refresh shared by every waiter."""

    def __init__(self):
        self._done = threading.Event()
        self._session = None
        self._error = None

    def resolve(self, session):
        self._session = session
        self._done.set()

    def fail(self, error):
        self._error = error
        self._done.set()

    def wait(self):
        self._done.wait()
        if self._error is not None:
            raise self._error
        return self._session


class SessionManager:
    def __init__(self, config, token_store, http=None, clock=utc_now):
        self._base_url = config["apiBaseUrl"].rstrip("/")
        self._timeout = config.get("requestTimeoutSec", API_TIMEOUT_SEC)
        self._trusted_org_id = config.get("trustedOrgId") or ""
        self._store = token_store
        self._http = http or create_session()
        self._clock = clock

        self._lock = threading.Lock()
        self._session = None
        self._state = AuthState.ANONYMOUS
        self._refresh_call = None

        # Fired after a refresh failure forced the session out.
        self.session_expired = Signal("session-expired")

    # ── Lifecycle ────────────────────────────────────────────

    def initialize(self):
        """Restore the stored session, refreshing it first if it has expired.

        Returns True when the manager ends up AUTHENTICATED.
        """
        session = self._store.load()
        if session is None:
            with self._lock:
                self._session = None
                self._state = AuthState.ANONYMOUS
            return False

        with self._lock:
            self._session = session
            self._state = AuthState.AUTHENTICATED

        if session.is_expired(self._clock()):
            log.info("Stored session expired at %s — refreshing", session.expires_at.isoformat())
            try:
                self.refresh()
            except ApiError as e:
                log.warning("Could not renew stored session: %s", e.message)
                return False

        log.info("Session restored for user %s", session.user.id)
        return self.is_authenticated

    def teardown(self):
        self.session_expired.clear()

    def login(self, profile):
        """Start a session from the /auth/callback profile."""
        try:
            session = Session.from_record(profile)
        except (ValueError, TypeError) as e:
            raise ApiError(ErrorCode.VALIDATION_ERROR, f"Malformed login profile: {e}") from e

        with self._lock:
            self._session = session
            self._state = AuthState.AUTHENTICATED
            self._refresh_call = None
            self._store.save(session)
        log.info("Logged in as %s (company %s)", session.user.id, session.company.id)
        return session

    def logout(self):
        """Invalidate remotely if possible, then always clear locally."""
        token = self.token
        if token:
            try:
                self._http.post(
                    f"{self._base_url}/auth/logout",
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self._timeout,
                )
            except requests.RequestException as e:
                log.warning("Logout API call failed: %s", e)
        self._clear()
        log.info("Logged out")

    # ── Refresh (single-flight) ──────────────────────────────

    def refresh(self, failed_token=None):
        """Renew the session token and return the updated Session.

        `failed_token` is the token a caller just saw rejected; if the current
        token is already a different one, the refresh that caller needs has
        happened and the current session is returned without a network call.
        Raises AuthRequiredError with no session, RefreshFailedError when the
        server or network rejects the refresh (the session is cleared first).
        """
        with self._lock:
            session = self._session
            if session is None:
                raise AuthRequiredError("No session to refresh")
            if failed_token is not None and session.token != failed_token:
                return session

            call = self._refresh_call
            owner = call is None
            if owner:
                call = self._refresh_call = _RefreshCall()
                self._state = AuthState.REFRESHING
                token = session.token

        if owner:
            self._perform_refresh(call, token)
        return call.wait()

    def _perform_refresh(self, call, token):
        try:
            new_token, expires_at = self._request_refresh(token)
        except RefreshFailedError as e:
            log.warning("Session refresh failed: %s", e.message)
            if self._clear(call):
                call.fail(e)
                self.session_expired.emit(e)
            else:
                call.fail(AuthRequiredError("Session changed during refresh"))
            return
        except Exception as e:
            self._clear(call)
            call.fail(e)
            raise

        # A logout (and possibly a new login) may have happened while the
        # request was out; the result belongs only to the session it renewed.
        with self._lock:
            current = self._session
            if self._refresh_call is not call or current is None or current.token != token:
                if self._refresh_call is call:
                    self._refresh_call = None
                error = AuthRequiredError("Session changed during refresh")
            else:
                self._refresh_call = None
                current = current.with_token(new_token, expires_at)
                self._session = current
                self._state = AuthState.AUTHENTICATED
                self._store.save(current)
                error = None

        if error is not None:
            call.fail(error)
        else:
            log.info("Session refreshed (expires %s)", expires_at.isoformat())
            call.resolve(current)

    def _request_refresh(self, token):
        try:
            resp = self._http.post(
                f"{self._base_url}/auth/refresh",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise RefreshFailedError(f"Refresh network error: {e}") from e

        if not resp.ok:
            raise RefreshFailedError(f"Refresh rejected: HTTP {resp.status_code}", resp.status_code)
        try:
            envelope = resp.json()
            if not envelope.get("success", True):
                raise ValueError("envelope without success")
            data = envelope["data"]
            new_token = data["sessionToken"]
            if not isinstance(new_token, str) or not new_token:
                raise ValueError("empty token")
            return new_token, parse_iso(data["expiresAt"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise RefreshFailedError(f"Malformed refresh response: {e}", resp.status_code) from e

    def _clear(self, call=None):
        """Drop the session. With `call`, only if that refresh is still the current one.

        Returns True when the session was cleared.
        """
        with self._lock:
            if call is not None and self._refresh_call is not call:
                return False
            self._refresh_call = None
            self._session = None
            self._state = AuthState.ANONYMOUS
            self._store.clear()
        return True

    # ── Role selection ───────────────────────────────────────

    def update_selected_role(self, role):
        """Persist the user's chosen role. Returns the previous effective role."""
        with self._lock:
            session = self._session
            if session is None:
                raise AuthRequiredError("No session")
            previous = session.user.selected_role or session.user.role
            session = session.with_selected_role(role)
            self._session = session
            self._store.save(session)
        return previous

    # ── Derived queries ──────────────────────────────────────

    @property
    def state(self):
        with self._lock:
            return self._state

    @property
    def session(self):
        with self._lock:
            return self._session

    @property
    def token(self):
        session = self.session
        return session.token if session else None

    @property
    def user(self):
        session = self.session
        return session.user if session else None

    @property
    def company(self):
        session = self.session
        return session.company if session else None

    @property
    def is_authenticated(self):
        session = self.session
        return bool(session and session.token and session.user)

    @property
    def is_employee(self):
        user = self.user
        return bool(user and self._trusted_org_id and user.org_id == self._trusted_org_id)

    @property
    def effective_role(self):
        user = self.user
        if user is None:
            return None
        return user.selected_role or user.role
