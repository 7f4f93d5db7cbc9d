"""Request-dispatch core shared by all bank integrations."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, ClassVar, Mapping, Optional, Union

import httpx

from ._http import HTTPClient, TimeoutConfig
from .auth import AuthManager, AuthToken, Credentials
from .batch import QueuedRequest, RequestQueue, run_batch
from .config import BankConfig, ConfigLayer, merge
from .exceptions import AuthTokenError, EndpointError
from .request_builder import Parameters, PendingRequest, build_request, resolve_endpoint
from .responses import (
    ApiFailure,
    BatchResult,
    Decoder,
    Result,
    decode_json,
    resolve_decoder,
    translate,
)
from .retry import RetryState, send_with_retry

logger = logging.getLogger(__name__)


class BankClient:
    """Client for a bank REST API protected by client-credentials auth.

    This class provides:
    - One-shot and global configuration overrides
    - Lazy bearer-token acquisition with forced refresh
    - Retries with a token refresh on configured HTTP status codes
    - A request queue flushed as a concurrent batch

    Integrations subclass it and fill in the class attributes below,
    then call ``request`` from their operations.

    Parameters
    ----------
    identifier : str
        Client id issued by the bank
    secret : str
        Client secret issued by the bank
    configuration : mapping, optional
        Overrides applied on top of the integration's defaults; they
        become the client's baseline configuration
    transport : httpx.BaseTransport, optional
        Transport passed to the underlying httpx clients
    timeout_config : TimeoutConfig, optional
        Per-phase timeouts; unset phases use the ``timeout`` option

    Raises
    ------
    ConfigurationError
        If the configuration is invalid or the transport cannot be built
    AuthTokenError
        If ``auth_init`` is set and no token can be fetched
    """

    #: Endpoint catalog, logical name -> base URL
    endpoints: ClassVar[dict[str, str]] = {}
    #: Catalog entry selected as the current endpoint on construction
    default_endpoint: ClassVar[Optional[str]] = None
    #: Catalog entry and path of the client-credentials token endpoint
    token_endpoint: ClassVar[str] = "token"
    token_path: ClassVar[str] = "connect/token"
    #: Headers sent with every request
    default_headers: ClassVar[dict[str, str]] = {}
    #: Integration defaults layered over ``BankConfig``'s own defaults
    default_configuration: ClassVar[dict[str, Any]] = {}
    #: Extra response decoders, type tag -> decoder
    decoders: ClassVar[dict[str, Decoder]] = {}

    def __init__(
        self,
        identifier: str,
        secret: str,
        configuration: Optional[Mapping[str, Any]] = None,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout_config: TimeoutConfig | None = None,
    ):
        self.credentials = Credentials(identifier=identifier, secret=secret)
        self._config = ConfigLayer(merge(BankConfig(), self.default_configuration), configuration)
        self._http = HTTPClient(self._config.active, transport=transport, timeout_config=timeout_config)
        self._http.configure(self._config.active)
        self._lock = threading.RLock()

        self.endpoint: Optional[str] = (
            self.endpoints.get(self.default_endpoint) if self.default_endpoint else None
        )
        self.auth = AuthManager(
            self.credentials,
            self._token_url(),
            self._send_once,
            headers={k: v for k, v in self.default_headers.items() if k.lower() != "authorization"},
        )

        self._queue = RequestQueue()
        self._queueing = False

        if self._config.active.auth_init:
            self.get_auth_token()

    def __enter__(self) -> "BankClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- Configuration -----------------

    def get_configuration(self) -> BankConfig:
        """Return the configuration currently in effect."""
        return self._config.active

    def set_configuration(self, overrides: Optional[Mapping[str, Any]] = None) -> "BankClient":
        """Apply one-shot overrides for the next ``request`` call.

        The overrides are layered on the baseline and dropped again once
        the next request finishes, whether it succeeds or fails. Calling
        it again with different overrides before that request makes the
        earlier ones part of the baseline.
        """
        if self._config.apply(overrides):
            self._http.configure(self._config.active)
        return self

    def set_global_configuration(self, overrides: Optional[Mapping[str, Any]] = None) -> "BankClient":
        """Apply overrides durably: they become the new baseline."""
        if self._config.apply_global(overrides):
            self._http.configure(self._config.active)
        return self

    def _restore_configuration(self) -> None:
        if self._config.restore():
            self._http.configure(self._config.active)

    # ---------------- Endpoints -----------------

    def get_endpoint(self, name: str) -> str:
        """Return the base URL registered under ``name``.

        Raises
        ------
        EndpointError
            If the integration has no endpoint with that name
        """
        if name not in self.endpoints:
            raise EndpointError(
                f"Unknown endpoint {name!r}. Available endpoints: {', '.join(sorted(self.endpoints))}"
            )
        return self.endpoints[name]

    def set_endpoint(self, name: str) -> "BankClient":
        """Resolve relative request paths against the endpoint ``name`` from now on."""
        self.endpoint = self.get_endpoint(name)
        return self

    def _token_url(self) -> str:
        base = self.endpoints.get(self.token_endpoint) or self._config.active.base_uri
        return resolve_endpoint(self.token_path, base)

    # ---------------- Authentication -----------------

    def get_auth_token(self, force: bool = False) -> AuthToken:
        """Return the cached bearer token, fetching a new one if needed or forced."""
        return self.auth.get_auth_token(force=force)

    def _refresh_auth(self) -> None:
        """Force a new token between retries.

        A failed refresh drops the cached token instead of raising, so the
        next attempt goes out with an empty ``Authorization`` header and
        the API's rejection keeps driving the retry loop.
        """
        try:
            self.get_auth_token(force=True)
        except AuthTokenError as exc:
            logger.warning("Token refresh failed, retrying unauthenticated: %s", exc)
            self.auth.clear()

    def _send_once(self, pending: PendingRequest) -> Result:
        """Send without retries; used for the token endpoint."""
        try:
            response = self._http.send(pending)
        except httpx.HTTPStatusError as exc:
            return ApiFailure.from_response(exc.response)
        return translate(response, decode_json)

    # ---------------- Requests -----------------

    def _decoder(self, return_type: str) -> Decoder:
        return resolve_decoder(return_type, self.decoders)

    def _build(
        self,
        method: str,
        endpoint: str,
        parameters: Parameters,
        headers: Optional[Mapping[str, str]],
    ) -> PendingRequest:
        return build_request(
            method,
            endpoint,
            parameters,
            headers,
            default_headers=self.default_headers,
            authorize=self.auth.get_bearer_authorization,
            base_endpoint=self.endpoint or self._config.active.base_uri,
        )

    def request(
        self,
        method: str,
        endpoint: str,
        parameters: Parameters = None,
        headers: Optional[Mapping[str, str]] = None,
        return_type: str = "json",
        *,
        configuration: Optional[Mapping[str, Any]] = None,
    ) -> Union[Result, QueuedRequest]:
        """Make an authenticated request.

        Parameters
        ----------
        method : str
            HTTP method, case-insensitive
        endpoint : str
            Absolute URL, or a path relative to the current endpoint
        parameters : mapping, str, bytes or None
            Body for POST/PUT/PATCH, query parameters otherwise
        headers : mapping, optional
            Per-call headers, layered over the default headers
        return_type : str
            Decoder tag for successful responses ("json", "raw", "text", ...)
        configuration : mapping, optional
            One-shot configuration overrides for this call only

        Returns
        -------
        Success, ApiFailure or QueuedRequest
            ``Success`` with the decoded body for 2xx responses,
            ``ApiFailure`` with the raw body once retries are exhausted or
            the status is not retryable, ``QueuedRequest`` in queueing mode

        Raises
        ------
        InvalidMethodError, InvalidParametersError, UnsupportedResponseTypeError
            For requests that cannot be built
        ConnectionError
            When the API cannot be reached

        Notes
        -----
        A token refresh that fails between retries does not raise; the
        next attempt is sent without a bearer token and counts against
        ``auth_retries`` like any other failure.
        """
        with self._lock:
            try:
                decoder = self._decoder(return_type)
                if configuration:
                    self.set_configuration(configuration)
                overrides = dict(self._config.overrides)

                if self._queueing:
                    pending = self._build(method, endpoint, parameters, headers)
                    logger.debug("Queued %s %s", pending.method, pending.url)
                    return self._queue.append(pending, return_type)

                def attempt() -> httpx.Response:
                    # Each retry re-runs configuration and request building.
                    self.set_configuration(overrides)
                    pending = self._build(method, endpoint, parameters, headers)
                    logger.debug("Sending %s %s", pending.method, pending.url)
                    return self._http.send(pending)

                response = send_with_retry(
                    attempt,
                    self._refresh_auth,
                    RetryState.from_config(self._config.active),
                )
            finally:
                self._restore_configuration()

        if response.is_success:
            return translate(response, decoder)
        return ApiFailure.from_response(response)

    # ---------------- Batching -----------------

    @property
    def queueing(self) -> bool:
        return self._queueing

    def queue(self) -> "BankClient":
        """Buffer subsequent requests until ``flush`` is called."""
        self._queueing = True
        return self

    def flush(self, limit: Optional[int] = None) -> list[BatchResult]:
        """Send up to ``limit`` queued requests (all if None) concurrently.

        Results are returned in submission order. Queueing mode ends
        with the flush. Uses ``asyncio.run``; from async code, await
        ``aflush`` instead.
        """
        if not len(self._queue):
            self._queueing = False
            return []
        return asyncio.run(self.aflush(limit))

    async def aflush(self, limit: Optional[int] = None) -> list[BatchResult]:
        """Async variant of ``flush``."""
        items = self._queue.take(limit)
        self._queueing = False
        return await run_batch(
            self._http, items, self._config.active.batch_concurrency, self._decoder
        )

    def close(self) -> None:
        """Close the underlying HTTP client.

        Should be called when done with the client to properly clean up
        connections. Can also be used as a context manager to handle
        this automatically.
        """
        self._http.close()
