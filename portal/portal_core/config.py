"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import sys
import json
import logging
from pathlib import Path

from .constants import DEFAULT_CONFIG


# ─── Paths ───────────────────────────────────────────────────────
# One data directory per user; SUMMIT_PORTAL_HOME overrides it.

BASE_DIR = Path(os.environ.get("SUMMIT_PORTAL_HOME", Path.home() / ".summit-portal"))

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "portal.log"
STORAGE_DIR = BASE_DIR / "storage"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_MAX_BYTES = 1_000_000

log = logging.getLogger("portal")


# ─── Safe print (no crash without a console) ─────────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except (OSError, ValueError):
        pass


# ─── Logging ─────────────────────────────────────────────────────

def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    """Attach the file + console handlers to the shared logger (idempotent)."""
    if log.handlers:
        return log

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        if log_file.exists() and log_file.stat().st_size > LOG_MAX_BYTES:
            log_file.write_text("")
    except OSError:
        pass

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(console_handler)

    log.setLevel(level)
    return log


# ─── Config Management ──────────────────────────────────────────

def load_config(path=CONFIG_FILE):
    """Load config from disk merged over the defaults. Always returns a dict."""
    config = dict(DEFAULT_CONFIG)
    path = Path(path)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                config.update(stored)
            else:
                log.warning("Ignoring config %s: not a JSON object", path)
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Unreadable config %s (%s) — using defaults", path, e)
    config["apiBaseUrl"] = config["apiBaseUrl"].rstrip("/")
    return config


def save_config(config, path=CONFIG_FILE):
    """Save config dict to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)
