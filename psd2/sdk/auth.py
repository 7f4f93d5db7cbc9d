"""Client-credentials authentication for bank APIs.

The token endpoint is called with HTTP Basic auth built from the
client's credentials; the bearer token it returns is cached in memory
and sent on every other request.
"""

from __future__ import annotations

import base64
import logging
from typing import Callable, Mapping, Optional
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .exceptions import AuthTokenError
from .request_builder import FORM_CONTENT_TYPE, PendingRequest, build_request
from .responses import Result

logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Client id and secret issued by the bank."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    secret: SecretStr


class AuthToken(BaseModel):
    """Bearer token returned by the token endpoint."""

    model_config = ConfigDict(frozen=True)

    token_type: str = Field(min_length=1)
    access_token: str = Field(min_length=1)
    expires_in: int = Field(default=0)


class AuthManager:
    """Produces ``Authorization`` header values for one set of credentials.

    Parameters
    ----------
    credentials : Credentials
        Client id and secret
    token_url : str
        Absolute URL of the ``connect/token`` endpoint
    dispatch : callable
        Sends a ``PendingRequest`` once, without auth refresh, and
        returns a ``Success`` or ``ApiFailure``
    headers : mapping, optional
        Extra headers for the token request
    """

    def __init__(
        self,
        credentials: Credentials,
        token_url: str,
        dispatch: Callable[[PendingRequest], Result],
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.credentials = credentials
        self.token_url = token_url
        self._dispatch = dispatch
        self._headers = dict(headers or {})
        self.token: Optional[AuthToken] = None

    def get_basic_authorization(self) -> str:
        identifier = quote_plus(self.credentials.identifier)
        secret = quote_plus(self.credentials.secret.get_secret_value())
        encoded = base64.b64encode(f"{identifier}:{secret}".encode("utf-8")).decode("ascii")
        return f"Basic {encoded}"

    def get_bearer_authorization(self) -> str:
        """Return ``"<type> <token>"``, fetching a token first if none is cached.

        Returns an empty string when no token could be obtained, so the
        API rejects the request and the retry policy takes over.
        """
        try:
            token = self.get_auth_token()
        except AuthTokenError as exc:
            logger.warning("Sending request without a bearer token: %s", exc)
            return ""
        return f"{token.token_type} {token.access_token}"

    def get_auth_token(self, force: bool = False) -> AuthToken:
        """Return the cached token, or fetch a new one.

        Raises
        ------
        AuthTokenError
            If the token endpoint fails or its body lacks the token fields
        """
        if self.token is not None and not force:
            return self.token

        headers = {
            "Accept": "application/json",
            **self._headers,
            "Content-Type": FORM_CONTENT_TYPE,
            "Authorization": self.get_basic_authorization(),
        }
        pending = build_request(
            "POST", self.token_url, {"grant_type": "client_credentials"}, headers
        )
        result = self._dispatch(pending)
        if not result.ok:
            raise AuthTokenError(
                f"Could not retrieve auth token (HTTP {result.status_code}). "
                "Ensure that your client id and secret are correct"
            )
        if not isinstance(result.value, dict):
            raise AuthTokenError("Token endpoint did not return a JSON object")
        try:
            token = AuthToken.model_validate(result.value)
        except ValidationError as exc:
            raise AuthTokenError(f"Token endpoint returned an unusable token: {exc}") from exc

        logger.debug("Fetched %s token valid for %ss", token.token_type, token.expires_in)
        self.token = token
        return token

    def clear(self) -> None:
        self.token = None
