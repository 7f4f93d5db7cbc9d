"""Tests for client-credentials authentication."""

import base64
from urllib.parse import parse_qs

import pytest

from psd2.sdk.auth import AuthManager, Credentials
from psd2.sdk.exceptions import AuthTokenError


def _decode_basic(header: str) -> str:
    scheme, encoded = header.split(" ", 1)
    assert scheme == "Basic"
    return base64.b64decode(encoded).decode("utf-8")


class TestBasicAuthorization:
    def test_basic_header(self):
        manager = AuthManager(Credentials(identifier="id", secret="sec"), "https://x/token", None)
        assert manager.get_basic_authorization() == "Basic " + base64.b64encode(b"id:sec").decode()

    def test_reserved_characters_are_url_encoded(self):
        manager = AuthManager(
            Credentials(identifier="my id", secret="p@ss:word/+"), "https://x/token", None
        )
        assert _decode_basic(manager.get_basic_authorization()) == "my+id:p%40ss%3Aword%2F%2B"

    def test_secret_not_in_repr(self):
        credentials = Credentials(identifier="id", secret="top-secret")
        assert "top-secret" not in repr(credentials)


class TestTokenRequests:
    def test_token_request_shape(self, bank, api):
        token = bank.get_auth_token()

        assert token.access_token == "tok-1"
        assert token.token_type == "Bearer"
        assert token.expires_in == 3600

        (request,) = api.token_requests
        assert request.method == "POST"
        assert str(request.url) == "https://auth.example.com/identity/connect/token"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert _decode_basic(request.headers["Authorization"]) == "client-id:client-secret"
        assert parse_qs(request.content.decode()) == {"grant_type": ["client_credentials"]}

    def test_token_is_cached(self, bank, api):
        first = bank.get_auth_token()
        assert bank.get_auth_token() is first
        assert api.token_calls == 1

    def test_forced_refresh(self, bank, api):
        bank.get_auth_token()
        token = bank.get_auth_token(force=True)
        assert token.access_token == "tok-2"
        assert api.token_calls == 2

    def test_bearer_used_on_requests(self, bank, api):
        bank.request("GET", "Accounts")
        bank.request("GET", "Accounts")

        assert [r.headers["Authorization"] for r in api.api_requests] == ["Bearer tok-1"] * 2
        assert api.token_calls == 1

    def test_auth_init_fetches_eagerly(self, make_bank, api):
        make_bank({"auth_init": True})
        assert api.token_calls == 1

    def test_lazy_by_default(self, make_bank, api):
        make_bank()
        assert api.token_calls == 0


class TestTokenFailures:
    @pytest.mark.parametrize("status", [400, 401, 500])
    def test_error_status_raises(self, bank, api, status):
        api.token_status = status

        with pytest.raises(AuthTokenError, match=f"HTTP {status}"):
            bank.get_auth_token()

    def test_token_endpoint_is_not_retried(self, make_bank, api):
        bank = make_bank({"auth_retries": 5})
        api.token_status = 500

        with pytest.raises(AuthTokenError):
            bank.get_auth_token()
        assert api.token_calls == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"token_type": "Bearer"},
            {"access_token": "abc"},
            {"access_token": "", "token_type": "Bearer"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_token_raises(self, bank, api, payload):
        api.token_payload = payload

        with pytest.raises(AuthTokenError):
            bank.get_auth_token()
        assert bank.auth.token is None

    def test_bearer_falls_back_to_empty(self, bank, api):
        api.token_status = 401
        assert bank.auth.get_bearer_authorization() == ""

    def test_auth_init_failure_raises(self, make_bank, api):
        api.token_status = 401

        with pytest.raises(AuthTokenError):
            make_bank({"auth_init": True})
