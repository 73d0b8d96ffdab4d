"""
Network utilities — connectivity probe and online/offline monitor.

Connectivity: socket-level check against the API host (interface agnostic,
no reliance on a specific adapter). The monitor turns successive probe
results into transitions and emits `restored` / `lost` signals.
"""

import socket
import threading
from urllib.parse import urlsplit

from .config import log
from .listeners import Signal


# ─── Connectivity check (network-interface agnostic) ─────────────

def is_online(server_url, timeout=4):
    """
    Quick connectivity check via socket connect to the server's host.
    Only tests whether a TCP connection to the server can be established.
    """
    parts = urlsplit(server_url)
    host = parts.hostname
    if not host:
        return False
    port = parts.port or (443 if parts.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.close()
        return True
    except OSError:
        return False


# ─── Connectivity monitor ────────────────────────────────────────

class ConnectivityMonitor:
    """
    Tracks whether the API host is reachable.

    check() probes once and emits on transitions; start() runs check() every
    `interval` seconds on a daemon thread. set_online() lets a caller that
    already knows (a UI event, a test) report the state directly.
    """

    def __init__(self, server_url, interval=15, probe=None, initially_online=True):
        self._server_url = server_url
        self._interval = interval
        self._probe = probe or is_online
        self._online = initially_online
        self._lock = threading.Lock()
        self._restored = Signal("connectivity-restored")
        self._lost = Signal("connectivity-lost")
        self._stop = threading.Event()
        self._thread = None

    @property
    def online(self):
        with self._lock:
            return self._online

    def on_connectivity_restored(self, handler):
        return self._restored.subscribe(handler)

    def on_connectivity_lost(self, handler):
        return self._lost.subscribe(handler)

    def set_online(self, online):
        with self._lock:
            was_online = self._online
            self._online = online
        if online and not was_online:
            log.info("Network ONLINE — reconnected")
            self._restored.emit()
        elif was_online and not online:
            log.warning("Network OFFLINE")
            self._lost.emit()

    def check(self):
        online = bool(self._probe(self._server_url))
        self.set_online(online)
        return online

    # ── Background polling ───────────────────────────────────

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="connectivity", daemon=True)
        self._thread.start()
        log.info("Connectivity monitor started (every %ss)", self._interval)

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self._interval + 5)
            self._thread = None
        self._restored.clear()
        self._lost.clear()

    def _run(self):
        while not self._stop.wait(self._interval):
            try:
                self.check()
            except Exception as e:
                log.error("Connectivity check error: %s", e, exc_info=True)
