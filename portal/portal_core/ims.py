"""
Identity provider login: authorize URL with anti-forgery state, callback
verification, and the code exchange through the backend.
"""

import secrets
from urllib.parse import urlencode

import requests

from .config import log
from .constants import API_TIMEOUT_SEC, IMS_STATE_KEY
from .errors import ApiError, ErrorCode, code_for_status


def generate_state():
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def build_login_url(config, ephemeral):
    """Remember a fresh `state` and return the provider's authorize URL."""
    state = generate_state()
    ephemeral.set(IMS_STATE_KEY, state)
    params = {
        "client_id": config["imsClientId"],
        "redirect_uri": config["redirectUri"],
        "scope": config["imsScope"],
        "response_type": "code",
        "state": state,
    }
    return f"{config['imsAuthUrl']}?{urlencode(params)}"


def exchange_code(config, http, code, redirect_uri):
    """POST /auth/callback and return the session profile. Raises ApiError."""
    url = f"{config['apiBaseUrl'].rstrip('/')}/auth/callback"
    try:
        resp = http.post(
            url,
            json={"imsAuthCode": code, "redirectUri": redirect_uri},
            timeout=config.get("requestTimeoutSec", API_TIMEOUT_SEC),
        )
    except requests.RequestException as e:
        log.warning("Auth callback network error: %s", e)
        raise ApiError(ErrorCode.NETWORK_ERROR, f"Network error: {e}") from e

    try:
        envelope = resp.json()
    except ValueError:
        envelope = {}
    if not isinstance(envelope, dict):
        envelope = {}

    if not resp.ok or not envelope.get("success"):
        error = envelope.get("error") if isinstance(envelope.get("error"), dict) else {}
        message = error.get("message") or "Authentication failed"
        error_code = code_for_status(resp.status_code) if not resp.ok else ErrorCode.SERVER_ERROR
        log.warning("Auth callback failed: HTTP %d — %s", resp.status_code, message)
        raise ApiError(error_code, message, resp.status_code, error.get("code"))

    return envelope.get("data")


def handle_callback(config, ephemeral, http, query):
    """Verify the redirect's `state`, then exchange its `code` for a profile."""
    state = query.get("state")
    stored = ephemeral.get(IMS_STATE_KEY)
    if not state or state != stored:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Invalid state parameter")
    ephemeral.remove(IMS_STATE_KEY)

    code = query.get("code")
    if not code:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "No authorization code received")

    return exchange_code(config, http, code, config["redirectUri"])
