"""
Entry point and auto-restart wrapper.

  portal run      restore the session and keep delivering activities (default)
  portal login    print the login URL, then read back the callback URL
  portal logout   end the session
  portal status   show who is logged in and how many activities are queued
  portal flush    deliver queued activities once
"""

import argparse
import sys
import time
from urllib.parse import parse_qsl, urlsplit

from .constants import CLIENT_VERSION
from .config import CONFIG_FILE, load_config, log, safe_print, save_config, setup_logging
from .errors import ApiError
from .app import PortalApp


def _cmd_run(app):
    if not app.initialize():
        safe_print("Not logged in. Run `portal login` first.")
        return 1
    app.login_required.subscribe(lambda url: safe_print(f"Session expired. Log in again: {url}"))
    app.start()
    safe_print("Service running.\n")
    try:
        app.wait()
    except KeyboardInterrupt:
        safe_print("\nStopped by user.")
    return 0


def _cmd_login(app):
    app.initialize()
    safe_print("Open this URL in a browser and log in:\n")
    safe_print(app.login_url())
    safe_print()
    callback = input("Paste the URL you were redirected to: ").strip()
    query = dict(parse_qsl(urlsplit(callback).query))
    try:
        destination = app.complete_login(query)
    except ApiError as e:
        safe_print(f"Login failed: {e.message}")
        return 1
    user = app.sessions.user
    safe_print(f"Logged in as {user.display_name} — continue at {destination}")
    return 0


def _cmd_logout(app):
    app.initialize()
    app.logout()
    safe_print("Logged out.")
    return 0


def _cmd_status(app):
    authenticated = app.initialize()
    if authenticated:
        user = app.sessions.user
        safe_print(f"User:     {user.display_name} ({user.email})")
        safe_print(f"Company:  {app.sessions.company.name or app.sessions.company.domain}")
        safe_print(f"Role:     {app.sessions.effective_role}")
        safe_print(f"Employee: {'yes' if app.sessions.is_employee else 'no'}")
        safe_print(f"Expires:  {app.sessions.session.expires_at.isoformat()}")
    else:
        safe_print("Not logged in.")
    safe_print(f"Queued activities: {len(app.queue)}")
    return 0


def _cmd_flush(app):
    if not app.initialize():
        safe_print("Not logged in.")
        return 1
    app.connectivity.check()
    result = app.queue.flush()
    safe_print(f"Delivered {result.delivered}, requeued {result.requeued}, dropped {result.dropped}")
    return 0


COMMANDS = {
    "run": _cmd_run,
    "login": _cmd_login,
    "logout": _cmd_logout,
    "status": _cmd_status,
    "flush": _cmd_flush,
}


def main(argv=None):
    """Primary entry point."""
    parser = argparse.ArgumentParser(prog="portal", description="Summit portal client")
    parser.add_argument("command", nargs="?", default="run", choices=sorted(COMMANDS))
    parser.add_argument("--version", action="version", version=f"%(prog)s {CLIENT_VERSION}")
    args = parser.parse_args(argv)

    setup_logging()
    if not CONFIG_FILE.exists():
        save_config(load_config())
    config = load_config()
    log.info("Summit portal client v%s (%s)", CLIENT_VERSION, args.command)

    app = PortalApp(config)
    try:
        return COMMANDS[args.command](app)
    finally:
        app.teardown()


def run_with_auto_restart():
    """
    Keep `portal run` alive across crashes.
    Crash counter resets if the client ran for 2+ minutes (not a boot-loop).
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            sys.exit(main(["run"]))
        except KeyboardInterrupt:
            safe_print("\nStopped by user.")
            break
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Client crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)
