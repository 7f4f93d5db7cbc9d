"""Registry of bank integrations, looked up by name."""

from __future__ import annotations

from ..client import BankClient
from ..exceptions import ConfigurationError
from .sbanken import SBanken

BANKS: dict[str, type[BankClient]] = {
    "sbanken": SBanken,
}


def get_bank(name: str) -> type[BankClient]:
    """Return the integration class registered under ``name`` (case-insensitive)."""
    try:
        return BANKS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown bank {name!r}. Supported banks: {', '.join(sorted(BANKS))}"
        ) from None


__all__ = ["BANKS", "SBanken", "get_bank"]
