"""
PortalApp — owns every component and their lifecycle.

Construction wires the pieces together; nothing touches the network until
initialize(). start() launches the background work:
  ConnectivityMonitor  — probes the API host       (every connectivityCheckSec)
  _flush_loop()        — flushes the queue if online (every flushIntervalSec)
Both run on daemon threads and stop on teardown().
"""

import threading

from .config import STORAGE_DIR, log
from .constants import (
    CONNECTIVITY_CHECK_SEC, FLUSH_BATCH_SIZE, FLUSH_INTERVAL_SEC, QUEUE_CAPACITY,
)
from .api import ApiClient
from .activity_queue import ActivityQueue
from .guard import check_route_access, redirect_after_login, remember_destination
from .http_client import create_session
from .ims import build_login_url, handle_callback
from .listeners import InteractionListeners, Signal
from .network import ConnectivityMonitor
from .session import SessionManager
from .storage import FileStorage, MemoryStorage
from .token_store import TokenStore
from .tracker import ActivityTracker


class PortalApp:
    def __init__(self, config, storage=None, ephemeral=None, http=None, probe=None):
        self._config = config
        self.storage = storage if storage is not None else FileStorage(STORAGE_DIR)
        self.ephemeral = ephemeral if ephemeral is not None else MemoryStorage()
        self._http = http or create_session()

        self.sessions = SessionManager(config, TokenStore(self.storage), http=self._http)
        self.api = ApiClient(config, self.sessions, http=self._http)
        self.connectivity = ConnectivityMonitor(
            config["apiBaseUrl"],
            interval=config.get("connectivityCheckSec", CONNECTIVITY_CHECK_SEC),
            probe=probe,
        )
        self.queue = ActivityQueue(
            self.storage, self.api, self.connectivity,
            capacity=config.get("queueCapacity", QUEUE_CAPACITY),
            batch_size=config.get("batchSize", FLUSH_BATCH_SIZE),
        )
        self.listeners = InteractionListeners()
        self.tracker = ActivityTracker(
            self.sessions, self.api, self.queue, self.connectivity, self.listeners,
        )

        # Fired with the login URL when a refresh failure forces the user out.
        self.login_required = Signal("login-required")
        self.current_path = None

        self._unsubscribe_expired = None
        self._stop = threading.Event()
        self._flush_thread = None

    # ── Lifecycle ────────────────────────────────────────────

    def initialize(self, page=None):
        """Restore the session and, if logged in, start tracking."""
        if self._unsubscribe_expired is None:
            self._unsubscribe_expired = self.sessions.session_expired.subscribe(self._on_session_expired)
        if page is not None:
            self.current_path = page.path
        authenticated = self.sessions.initialize()
        if authenticated:
            self.tracker.init(page)
        else:
            # Left over from a session that ended while the app was down.
            self.queue.clear()
        return authenticated

    def start(self):
        self._stop.clear()
        self.connectivity.start()
        self._flush_thread = threading.Thread(target=self._flush_loop, name="flush", daemon=True)
        self._flush_thread.start()

    def wait(self, timeout=None):
        """Block until teardown() is called (or the timeout passes)."""
        return self._stop.wait(timeout)

    def teardown(self):
        self._stop.set()
        if self._flush_thread:
            self._flush_thread.join(timeout=5)
            self._flush_thread = None
        self.connectivity.stop()
        self.tracker.teardown()
        self.listeners.stop()
        if self._unsubscribe_expired:
            self._unsubscribe_expired()
            self._unsubscribe_expired = None
        self.sessions.teardown()
        self.login_required.clear()
        log.info("PortalApp shut down.")

    def _flush_loop(self):
        interval = self._config.get("flushIntervalSec", FLUSH_INTERVAL_SEC)
        while not self._stop.wait(interval):
            if not self.sessions.is_authenticated:
                continue
            try:
                self.queue.flush()
            except Exception as e:
                log.error("Periodic flush error: %s", e, exc_info=True)

    # ── Login / logout ───────────────────────────────────────

    def login_url(self):
        return build_login_url(self._config, self.ephemeral)

    def complete_login(self, query, page=None):
        """Finish the provider redirect. Returns the path to continue to."""
        profile = handle_callback(self._config, self.ephemeral, self._http, query)
        self.sessions.login(profile)
        self.tracker.init(page)
        return redirect_after_login(self.ephemeral)

    def logout(self):
        self.tracker.teardown()
        self.sessions.logout()
        self.queue.clear()

    def _on_session_expired(self, error):
        log.warning("Session ended (%s) — login required", error.message)
        if self.current_path:
            remember_destination(self.ephemeral, self.current_path)
        self.tracker.teardown()
        self.queue.clear()
        self.login_required.emit(self.login_url())

    # ── Navigation and roles ─────────────────────────────────

    def navigate(self, page):
        """Check access to a page and record the view. Returns the RouteDecision."""
        decision = check_route_access(page.path, self.sessions, self.ephemeral, self.login_url)
        if decision.allowed:
            self.current_path = page.path
            self.tracker.track_page_view(page)
        return decision

    def select_role(self, role):
        previous = self.sessions.update_selected_role(role)
        if previous != role:
            self.tracker.track_role_switch(previous, role)
        return role
