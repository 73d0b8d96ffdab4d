"""
ActivityTracker — turns page views, clicks and explicit calls into activities.

Routing per activity:
  not logged in → dropped (tracking is a logged-in feature)
  offline       → queued
  online        → POST /activities; on failure queued for the next flush,
                  or dropped if the failure ended the session

Runs at most once per app lifetime (init() is guarded). Reconnects trigger a
queue flush.
"""

import json
import platform
import threading
import time

from .config import log
from .constants import (
    CLIENT_VERSION, DOCUMENT_DOWNLOAD, DOCUMENT_VIEW, ELEMENT_TEXT_LIMIT,
    LINK_CLICK, PAGE_VIEW, ROLE_SWITCH,
)
from .errors import ApiError
from .state import Activity, to_iso, utc_now


def client_signature():
    return f"summit-portal-client/{CLIENT_VERSION} ({platform.system()} {platform.release()}; Python {platform.python_version()})"


class ActivityTracker:
    def __init__(self, session_manager, api, queue, connectivity, listeners=None,
                 user_agent=None):
        self._sessions = session_manager
        self._api = api
        self._queue = queue
        self._connectivity = connectivity
        self._listeners = listeners
        self._user_agent = user_agent or client_signature()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._unsubscribe = []

    @property
    def initialized(self):
        return self._initialized

    def init(self, page=None):
        """Start tracking (once). Returns False when there is no session."""
        with self._init_lock:
            if self._initialized or not self._sessions.is_authenticated:
                return self._initialized
            self._initialized = True

        if page is not None:
            self.track_page_view(page)

        if self._listeners is not None:
            self._unsubscribe.append(self._listeners.on_trackable_interaction(self.handle_interaction))
        self._unsubscribe.append(self._connectivity.on_connectivity_restored(self.flush))

        self.flush()
        log.info("Activity tracking started")
        return True

    def teardown(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        with self._init_lock:
            self._initialized = False

    def flush(self):
        return self._queue.flush()

    # ── Core ─────────────────────────────────────────────────

    def track(self, activity_type, metadata=None):
        """Record one activity. Returns "sent", "queued" or "dropped"."""
        if not self._sessions.is_authenticated:
            return "dropped"

        metadata = dict(metadata or {})
        metadata["timestamp"] = to_iso(utc_now())
        metadata["userAgent"] = self._user_agent
        activity = Activity(type=activity_type, metadata=metadata)

        if not self._connectivity.online:
            return self._enqueue(activity)

        try:
            self._api.post_activity(activity)
        except ApiError as e:
            if not self._sessions.is_authenticated:
                # Forced logout: never replay it under a later login.
                log.warning("Dropping %s: session ended (%s)", activity_type, e.code)
                return "dropped"
            log.warning("Failed to track %s (%s) — queued for retry", activity_type, e.code)
            return self._enqueue(activity)
        return "sent"

    def _enqueue(self, activity):
        if self._queue.enqueue(activity) is None:
            return "dropped"
        return "queued"

    # ── Page and interaction signals ─────────────────────────

    def track_page_view(self, page):
        return self.track(PAGE_VIEW, {
            "url": page.url,
            "path": page.path,
            "title": page.title,
            "referrer": page.referrer,
        })

    def handle_interaction(self, interaction):
        """Track a link click and/or an opted-in element. Returns the activity types recorded."""
        tracked = []
        text = (interaction.text or "").strip()[:ELEMENT_TEXT_LIMIT]

        if interaction.tag.lower() == "a":
            href = interaction.href
            if href and not href.startswith("#"):
                self.track(LINK_CLICK, {
                    "url": href,
                    "elementId": interaction.element_id or None,
                    "elementText": text,
                    "pageUrl": interaction.page_url,
                })
                tracked.append(LINK_CLICK)

        if interaction.track:
            metadata = {
                "elementId": interaction.element_id or None,
                "elementText": text,
            }
            metadata.update(self._parse_track_meta(interaction.track_meta))
            self.track(interaction.track, metadata)
            tracked.append(interaction.track)

        return tracked

    @staticmethod
    def _parse_track_meta(raw):
        if not raw:
            return {}
        try:
            meta = json.loads(raw)
        except ValueError as e:
            log.warning("Ignoring unparseable track metadata %r: %s", raw[:80], e)
            return {}
        if not isinstance(meta, dict):
            log.warning("Ignoring non-object track metadata %r", raw[:80])
            return {}
        return meta

    # ── Convenience calls ────────────────────────────────────

    def track_document_view(self, document_id, document_title):
        """Start timing a document view; call the returned function when done."""
        started = time.monotonic()

        def finish():
            duration_ms = int((time.monotonic() - started) * 1000)
            return self.track(DOCUMENT_VIEW, {
                "documentId": document_id,
                "documentTitle": document_title,
                "durationMs": duration_ms,
            })

        return finish

    def track_document_download(self, document_id, document_title):
        return self.track(DOCUMENT_DOWNLOAD, {
            "documentId": document_id,
            "documentTitle": document_title,
        })

    def track_role_switch(self, from_role, to_role):
        return self.track(ROLE_SWITCH, {"fromRole": from_role, "toRole": to_role})
