"""Identity provider login flow and route guard."""

from urllib.parse import parse_qs, urlsplit

import pytest

from portal_core.constants import IMS_STATE_KEY, REDIRECT_KEY
from portal_core.errors import ApiError, ErrorCode
from portal_core.guard import check_route_access, redirect_after_login, remember_destination
from portal_core.ims import build_login_url, handle_callback
from portal_core.session import SessionManager
from portal_core.state import Session
from portal_core.storage import MemoryStorage
from portal_core.token_store import TokenStore

from conftest import envelope, failure, make_record, network_down


@pytest.fixture
def ephemeral():
    return MemoryStorage()


class TestLoginUrl:
    def test_url_carries_oauth_parameters(self, config, ephemeral):
        url = build_login_url(config, ephemeral)

        parts = urlsplit(url)
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}
        assert url.startswith(config["imsAuthUrl"] + "?")
        assert query["client_id"] == config["imsClientId"]
        assert query["redirect_uri"] == "https://portal.test/auth/callback"
        assert query["response_type"] == "code"
        assert query["scope"] == config["imsScope"]
        assert query["state"] == ephemeral.get(IMS_STATE_KEY)
        assert len(query["state"]) == 64

    def test_each_login_gets_a_fresh_state(self, config, ephemeral):
        build_login_url(config, ephemeral)
        first = ephemeral.get(IMS_STATE_KEY)
        build_login_url(config, ephemeral)

        assert ephemeral.get(IMS_STATE_KEY) != first


class TestCallback:
    def test_valid_callback_exchanges_code(self, config, ephemeral, http):
        profile = make_record()
        http.route("POST", "/auth/callback", envelope(profile))
        ephemeral.set(IMS_STATE_KEY, "abc")

        result = handle_callback(config, ephemeral, http, {"state": "abc", "code": "xyz"})

        assert result == profile
        assert http.calls[0]["json"] == {
            "imsAuthCode": "xyz",
            "redirectUri": "https://portal.test/auth/callback",
        }
        assert IMS_STATE_KEY not in ephemeral

    def test_state_mismatch_is_rejected(self, config, ephemeral, http):
        ephemeral.set(IMS_STATE_KEY, "abc")

        with pytest.raises(ApiError) as exc:
            handle_callback(config, ephemeral, http, {"state": "evil", "code": "xyz"})

        assert exc.value.message == "Invalid state parameter"
        assert http.calls == []

    def test_missing_code_is_rejected(self, config, ephemeral, http):
        ephemeral.set(IMS_STATE_KEY, "abc")

        with pytest.raises(ApiError) as exc:
            handle_callback(config, ephemeral, http, {"state": "abc"})

        assert exc.value.code == ErrorCode.VALIDATION_ERROR

    def test_backend_rejection_surfaces_message(self, config, ephemeral, http):
        http.route("POST", "/auth/callback", failure(401, "INVALID_AUTH_CODE", "Failed to exchange authorization code"))
        ephemeral.set(IMS_STATE_KEY, "abc")

        with pytest.raises(ApiError) as exc:
            handle_callback(config, ephemeral, http, {"state": "abc", "code": "xyz"})

        assert exc.value.server_code == "INVALID_AUTH_CODE"
        assert exc.value.message == "Failed to exchange authorization code"

    def test_network_failure(self, config, ephemeral, http):
        http.route("POST", "/auth/callback", network_down)
        ephemeral.set(IMS_STATE_KEY, "abc")

        with pytest.raises(ApiError) as exc:
            handle_callback(config, ephemeral, http, {"state": "abc", "code": "xyz"})

        assert exc.value.code == ErrorCode.NETWORK_ERROR


class TestGuard:
    def sessions(self, config, storage, http, record=None):
        store = TokenStore(storage)
        if record:
            store.save(Session.from_record(record))
        manager = SessionManager(config, store, http=http)
        manager.initialize()
        return manager

    def test_public_paths_are_open(self, config, storage, http, ephemeral):
        decision = check_route_access("/", self.sessions(config, storage, http), ephemeral, lambda: "LOGIN")
        assert decision.allowed

    def test_portal_requires_login_and_remembers_path(self, config, storage, http, ephemeral):
        decision = check_route_access(
            "/portal/agenda", self.sessions(config, storage, http), ephemeral, lambda: "LOGIN",
        )

        assert not decision.allowed
        assert decision.redirect == "LOGIN"
        assert redirect_after_login(ephemeral) == "/portal/agenda"
        assert REDIRECT_KEY not in ephemeral

    def test_portal_allows_logged_in_user(self, config, storage, http, ephemeral):
        sessions = self.sessions(config, storage, http, make_record(org_id="acme"))
        assert check_route_access("/portal", sessions, ephemeral, lambda: "LOGIN").allowed

    def test_employee_area_sends_others_to_portal(self, config, storage, http, ephemeral):
        sessions = self.sessions(config, storage, http, make_record(org_id="acme"))

        decision = check_route_access("/employee/tools", sessions, ephemeral, lambda: "LOGIN")

        assert not decision.allowed
        assert decision.redirect == "/portal"

    def test_employee_area_allows_trusted_org(self, config, storage, http, ephemeral):
        sessions = self.sessions(config, storage, http, make_record(org_id="adobe-org"))
        assert check_route_access("/employee/tools", sessions, ephemeral, lambda: "LOGIN").allowed

    def test_redirect_defaults_to_portal_home(self, ephemeral):
        assert redirect_after_login(ephemeral) == "/portal"

    def test_remembered_destination_is_popped_once(self, ephemeral):
        remember_destination(ephemeral, "/portal/x")
        assert redirect_after_login(ephemeral) == "/portal/x"
        assert redirect_after_login(ephemeral) == "/portal"
