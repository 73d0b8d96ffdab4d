"""
TokenStore — persistence delegate for the Session.

No network I/O. `load()` never raises: a record that cannot be parsed or is
structurally incomplete counts as "no session" and is removed.
"""

import json

from .config import log
from .constants import SESSION_KEY
from .errors import ErrorCode
from .state import Session


class TokenStore:
    def __init__(self, storage, key=SESSION_KEY):
        self._storage = storage
        self._key = key

    def load(self):
        """Return the stored Session, or None (clearing a corrupt record)."""
        try:
            raw = self._storage.get(self._key)
        except OSError as e:
            log.warning("Session storage unreadable: %s", e)
            return None
        if raw is None:
            return None

        try:
            return Session.from_record(json.loads(raw))
        except (ValueError, TypeError) as e:
            log.warning("%s: discarding stored session (%s)", ErrorCode.CORRUPT_LOCAL_STATE, e)
            self.clear()
            return None

    def save(self, session):
        try:
            self._storage.set(self._key, json.dumps(session.to_record()))
        except OSError as e:
            log.error("Failed to persist session: %s", e)

    def clear(self):
        try:
            self._storage.remove(self._key)
        except OSError as e:
            log.error("Failed to clear stored session: %s", e)
