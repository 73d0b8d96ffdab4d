"""
Route guard: which paths need a session (or an employee session), and where
to send the user back to after login.
"""

from dataclasses import dataclass

from .constants import EMPLOYEE_PREFIX, PORTAL_HOME, PORTAL_PREFIX, REDIRECT_KEY


@dataclass
class RouteDecision:
    allowed: bool
    redirect: str = None


def remember_destination(ephemeral, path):
    ephemeral.set(REDIRECT_KEY, path)


def redirect_after_login(ephemeral):
    """Pop the remembered destination (default: portal home)."""
    path = ephemeral.get(REDIRECT_KEY)
    ephemeral.remove(REDIRECT_KEY)
    return path or PORTAL_HOME


def check_route_access(path, session_manager, ephemeral, login_url):
    """
    /portal*   → requires a session
    /employee* → requires a session from the trusted organization
    `login_url` is a zero-argument callable, only called when a login is needed.
    """
    needs_employee = path.startswith(EMPLOYEE_PREFIX)
    if not (needs_employee or path.startswith(PORTAL_PREFIX)):
        return RouteDecision(True)

    if not session_manager.is_authenticated:
        remember_destination(ephemeral, path)
        return RouteDecision(False, login_url())

    if needs_employee and not session_manager.is_employee:
        return RouteDecision(False, PORTAL_HOME)

    return RouteDecision(True)
