"""PSD2 client SDK.

Typical use::

    import psd2.sdk as psd2

    with psd2.connect("sbanken", client_id, client_secret) as bank:
        accounts = bank.get_accounts(customer_id)
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ._http import TimeoutConfig
from .auth import AuthToken, Credentials
from .banks import BANKS, SBanken, get_bank
from .batch import QueuedRequest
from .client import BankClient
from .config import BankConfig, ClientSettings, get_settings, load_dotenv_for_sdk
from .exceptions import (
    AuthTokenError,
    ConfigurationError,
    ConnectionError,
    EndpointError,
    HTTPError,
    IntegrationSemanticError,
    InvalidMethodError,
    InvalidParametersError,
    PSD2Error,
    RedirectError,
    UnsupportedResponseTypeError,
)
from .responses import ApiFailure, Success, TransportFailure


def connect(
    bank: str,
    identifier: str,
    secret: str,
    configuration: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> BankClient:
    """Instantiate the integration registered under ``bank``."""
    return get_bank(bank)(identifier, secret, configuration, **kwargs)


__all__ = [
    "ApiFailure",
    "AuthToken",
    "AuthTokenError",
    "BANKS",
    "BankClient",
    "BankConfig",
    "ClientSettings",
    "ConfigurationError",
    "ConnectionError",
    "Credentials",
    "EndpointError",
    "HTTPError",
    "IntegrationSemanticError",
    "InvalidMethodError",
    "InvalidParametersError",
    "PSD2Error",
    "QueuedRequest",
    "RedirectError",
    "SBanken",
    "Success",
    "TimeoutConfig",
    "TransportFailure",
    "UnsupportedResponseTypeError",
    "connect",
    "get_bank",
    "get_settings",
    "load_dotenv_for_sdk",
]
