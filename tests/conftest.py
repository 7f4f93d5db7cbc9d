"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import httpx
import pytest

from psd2.sdk.client import BankClient

TOKEN_PATH = "/identity/connect/token"

Route = Union[int, tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class DemoBank(BankClient):
    """Minimal integration used throughout the tests."""

    endpoints = {
        "token": "https://auth.example.com/identity/",
        "api": "https://api.example.com/v1/",
        "other": "https://other.example.com/",
    }
    default_endpoint = "api"
    default_headers = {"Accept": "application/json"}


class FakeBankAPI:
    """Scripted bank API behind an ``httpx.MockTransport``.

    The token endpoint hands out ``tok-1``, ``tok-2``, ... Other paths
    answer from ``routes``: a list of status codes or ``(status, json)``
    pairs consumed in order (the last one repeats), or a callable.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[Route]] = {}
        self.token_status = 200
        self.token_payload: Optional[Any] = None
        self.token_calls = 0

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != TOKEN_PATH]

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == TOKEN_PATH]

    def route(self, path: str, *responses: Route) -> None:
        self.routes[path] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == TOKEN_PATH:
            self.token_calls += 1
            payload = self.token_payload
            if payload is None:
                payload = {
                    "access_token": f"tok-{self.token_calls}",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                }
            return httpx.Response(self.token_status, json=payload)

        script = self.routes.get(request.url.path)
        if not script:
            return httpx.Response(200, json={"path": request.url.path})
        entry = script.pop(0) if len(script) > 1 else script[0]
        if callable(entry):
            return entry(request)
        if isinstance(entry, tuple):
            status, payload = entry
            return httpx.Response(status, json=payload)
        return httpx.Response(entry, json={"status": entry})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def api() -> FakeBankAPI:
    return FakeBankAPI()


@pytest.fixture
def make_bank(api: FakeBankAPI) -> Callable[..., DemoBank]:
    """Build a ``DemoBank`` wired to the fake API."""
    clients: list[DemoBank] = []

    def factory(configuration: Optional[dict] = None, **kwargs: Any) -> DemoBank:
        kwargs.setdefault("transport", api.transport)
        client = DemoBank("client-id", "client-secret", configuration, **kwargs)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def bank(make_bank) -> DemoBank:
    return make_bank()
