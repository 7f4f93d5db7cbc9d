"""Exception classes for the PSD2 client.

This module defines custom exceptions that can be raised by client
operations, providing more specific error handling than generic
exceptions.
"""

from __future__ import annotations


class PSD2Error(Exception):
    """Base exception for all PSD2 client errors.

    All custom exceptions in the package inherit from this base class,
    allowing applications to catch all client-specific errors with a
    single except clause if desired.
    """

    pass


class ConfigurationError(PSD2Error):
    """Raised when the client configuration is invalid or incomplete.

    Covers unknown configuration keys, values of the wrong type, and a
    transport that could not be initialized from the configuration.
    """

    pass


class InvalidMethodError(PSD2Error):
    """Raised when a request uses an HTTP method outside the allowed set.

    Attributes
    ----------
    method : str
        The rejected method, uppercased
    allowed : tuple[str, ...]
        The methods that would have been accepted
    """

    def __init__(self, method: str, allowed: tuple[str, ...]):
        self.method = method
        self.allowed = allowed
        super().__init__(
            f"Invalid method {method!r}. The method used to send your request "
            f"needs to be one of the following: {', '.join(allowed)}"
        )


class InvalidParametersError(PSD2Error):
    """Raised when request parameters cannot be serialized.

    Parameters must be a mapping, a string, bytes or None.
    """

    pass


class AuthTokenError(PSD2Error):
    """Raised when the token endpoint does not return a usable token."""

    pass


class UnsupportedResponseTypeError(PSD2Error):
    """Raised when no decoder exists for the requested response type.

    Attributes
    ----------
    return_type : str
        The requested type tag
    """

    def __init__(self, return_type: str, supported: list[str]):
        self.return_type = return_type
        self.supported = supported
        super().__init__(
            f"Can't parse response as {return_type!r}. "
            f"Use one of: {', '.join(supported)}"
        )


class EndpointError(PSD2Error):
    """Raised when an integration is asked for an endpoint it does not define."""

    pass


class RedirectError(PSD2Error):
    """Raised when a redirect violates the configured redirect policy.

    Either the redirect limit was exceeded or the redirect target uses a
    protocol that is not allowed.
    """

    pass


class HTTPError(PSD2Error):
    """Raised when an HTTP request returns an error status code.

    This exception provides access to both the HTTP status code and
    the response body, allowing for detailed error handling based on
    the specific API error.

    Attributes
    ----------
    status_code : int
        The HTTP status code (e.g., 400, 401, 404, 500)
    body : str
        The response body, typically containing error details
    """

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


class ConnectionError(PSD2Error):
    """Raised when unable to reach the bank API.

    This typically indicates network issues, an incorrect API URL,
    or the API service being unavailable. No HTTP response exists, so
    the retry engine never handles it.

    Attributes
    ----------
    url : str
        The URL that failed to connect
    original_error : Exception
        The underlying exception that caused the connection failure
    """

    def __init__(self, url: str, original_error: Exception):
        self.url = url
        self.original_error = original_error
        super().__init__(f"Failed to connect to {url}: {original_error}")


class IntegrationSemanticError(PSD2Error):
    """Base class for errors raised by bank integrations.

    Raised when an operation's input fails the bank's business rules or
    the decoded response does not have the shape the operation expects.
    """

    pass
