"""Internal HTTP client wrapper for the PSD2 client.

This module provides a thin wrapper around httpx to handle connection
pooling, redirects and error handling consistently across the package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from .config import BankConfig
from .exceptions import ConfigurationError, ConnectionError, RedirectError

if TYPE_CHECKING:
    from .request_builder import PendingRequest

logger = logging.getLogger(__name__)

STRICT_REDIRECT_CODES = (301, 302)


@dataclass
class TimeoutConfig:
    """Configuration for HTTP request timeouts.

    ``None`` fields fall back to the ``timeout`` option of the bank
    configuration.
    """

    read: float | None = None
    connect: float | None = 10.0
    write: float | None = None
    pool: float | None = None

    def build(self, default: float) -> httpx.Timeout:
        return httpx.Timeout(
            read=self.read if self.read is not None else default,
            connect=self.connect if self.connect is not None else default,
            write=self.write if self.write is not None else default,
            pool=self.pool if self.pool is not None else default,
        )


class HTTPClient:
    """Sync HTTP client with connection pooling, redirects and error handling.

    The ``httpx.Client`` is created lazily and rebuilt only when the
    transport-relevant part of the configuration changes. Async clients
    for batch flushes are created on demand by ``async_client``.
    """

    def __init__(
        self,
        config: BankConfig,
        transport: httpx.BaseTransport | None = None,
        timeout_config: TimeoutConfig | None = None,
    ):
        self._client: httpx.Client | None = None
        self._client_key: tuple | None = None
        self.config = config
        self.transport = transport
        self.timeout_config = timeout_config or TimeoutConfig()

    def configure(self, config: BankConfig, force: bool = False) -> None:
        """Use ``config`` from now on, rebuilding the httpx client if needed."""
        self.config = config
        if force or (self._client is not None and self._client_key != config.transport_key()):
            self.close()
        if self._client is None:
            self._client = self._build_client()

    def _build_client(self) -> httpx.Client:
        try:
            client = httpx.Client(
                timeout=self.timeout_config.build(self.config.timeout),
                transport=self.transport,
                follow_redirects=False,
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"A problem occurred during HTTP client initialization: {exc}"
            ) from exc
        self._client_key = self.config.transport_key()
        return client

    def async_client(self) -> httpx.AsyncClient:
        """Build a fresh async client with the current configuration."""
        return httpx.AsyncClient(
            timeout=self.timeout_config.build(self.config.timeout),
            transport=self.transport,
            follow_redirects=False,
        )

    def send(self, pending: "PendingRequest") -> httpx.Response:
        """Send one request and return the response.

        Raises
        ------
        httpx.HTTPStatusError
            For non-2xx responses; the response is attached to the error
        ConnectionError
            When no response could be obtained
        RedirectError
            When a redirect violates the configured policy
        """
        if self._client is None:
            self.configure(self.config)

        try:
            request = self._client.build_request(
                pending.method, pending.url, headers=pending.headers, content=pending.body
            )
            response = self._client.send(request)
            history: list[httpx.Response] = []
            while (next_request := self._next_redirect(response, history)) is not None:
                response.read()
                response = self._client.send(next_request)
            self._finish(response, history)
            response.read()
        except httpx.TransportError as exc:
            raise ConnectionError(pending.url, exc) from exc
        except httpx.InvalidURL as exc:
            raise ConnectionError(pending.url, exc) from exc

        response.raise_for_status()
        return response

    async def asend(self, client: httpx.AsyncClient, pending: "PendingRequest") -> httpx.Response:
        """Async twin of ``send`` used by batch flushes."""
        try:
            request = client.build_request(
                pending.method, pending.url, headers=pending.headers, content=pending.body
            )
            response = await client.send(request)
            history: list[httpx.Response] = []
            while (next_request := self._next_redirect(response, history)) is not None:
                await response.aread()
                response = await client.send(next_request)
            self._finish(response, history)
            await response.aread()
        except httpx.TransportError as exc:
            raise ConnectionError(pending.url, exc) from exc
        except httpx.InvalidURL as exc:
            raise ConnectionError(pending.url, exc) from exc

        response.raise_for_status()
        return response

    # ---------------- redirects -----------------

    def _next_redirect(
        self, response: httpx.Response, history: list[httpx.Response]
    ) -> httpx.Request | None:
        """Apply the redirect policy and return the follow-up request, if any."""
        next_request = response.next_request
        if next_request is None:
            return None

        config = self.config
        if len(history) >= config.max_redirects:
            raise RedirectError(
                f"Will not follow more than {config.max_redirects} redirects "
                f"(last: {response.request.url})"
            )
        if next_request.url.scheme not in config.allowed_protocols:
            raise RedirectError(
                f"Redirect to {next_request.url} uses a protocol outside "
                f"{', '.join(config.allowed_protocols)}"
            )

        original = response.request
        if (
            config.strict_redirects
            and response.status_code in STRICT_REDIRECT_CODES
            and next_request.method != original.method
        ):
            next_request = httpx.Request(
                original.method,
                next_request.url,
                headers=next_request.headers,
                content=original.content,
            )
        if config.referer_on_redirect and original.url.scheme == next_request.url.scheme:
            next_request.headers["Referer"] = str(original.url.copy_with(username=None, password=None))

        if config.on_redirect_callback is not None:
            config.on_redirect_callback(original, response)

        logger.debug("Following redirect %s -> %s", original.url, next_request.url)
        history.append(response)
        return next_request

    def _finish(self, response: httpx.Response, history: list[httpx.Response]) -> None:
        response.history = list(history)
        if self.config.track_redirects and history:
            response.headers["X-Redirect-History"] = ", ".join(
                str(r.next_request.url) for r in history
            )
            response.headers["X-Redirect-Status-History"] = ", ".join(
                str(r.status_code) for r in history
            )

    def close(self) -> None:
        """Close the underlying HTTP client and release resources."""
        if self._client:
            self._client.close()
            self._client = None
            self._client_key = None
