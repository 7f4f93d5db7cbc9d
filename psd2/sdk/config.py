"""Configuration management for the PSD2 client.

Two layers live here:

* ``BankConfig`` and ``ConfigLayer`` hold the per-client transport and
  retry options. A client keeps an *active* configuration (what the
  current call uses) and a *baseline* (what it returns to once a call
  with one-shot overrides has finished).
* ``ClientSettings`` reads credentials and a few overrides from the
  environment, optionally after loading a ``.env`` file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

UNLIMITED_RETRIES = -1
DEFAULT_RETRY_CODES = frozenset({500})
DEFAULT_BATCH_CONCURRENCY = 15

# Fields that require a new httpx client when they change.
TRANSPORT_FIELDS = ("base_uri", "timeout")

ENV_PREFIX = "PSD2_"
# Variable names some integrations document for their own credentials
ENV_ALIASES: dict[str, tuple[str, ...]] = {
    "CLIENT_ID": ("SBANKEN_CLIENT_ID",),
    "CLIENT_SECRET": ("SBANKEN_CLIENT_SECRET",),
}
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


class BankConfig(BaseModel):
    """Validated configuration for one bank client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Transport
    base_uri: str = Field(default="")
    timeout: float = Field(default=30.0)

    # Redirects
    max_redirects: int = Field(default=5)
    strict_redirects: bool = Field(default=False)
    referer_on_redirect: bool = Field(default=False)
    allowed_protocols: tuple[str, ...] = Field(default=("http", "https"))
    on_redirect_callback: Optional[Callable[..., Any]] = Field(default=None)
    track_redirects: bool = Field(default=False)

    # Authentication and retries
    auth_init: bool = Field(default=False)
    auth_retries: int = Field(default=3)
    auth_retries_codes: frozenset[int] = Field(default=DEFAULT_RETRY_CODES)

    # Batching
    batch_concurrency: int = Field(default=DEFAULT_BATCH_CONCURRENCY)

    @field_validator("auth_retries", mode="before")
    @classmethod
    def _clamp_retries(cls, value: Any) -> int:
        # Anything below -1 means "unlimited" as well.
        return max(int(value), UNLIMITED_RETRIES)

    @field_validator("auth_retries_codes", mode="before")
    @classmethod
    def _coerce_retry_codes(cls, value: Any) -> frozenset[int]:
        if isinstance(value, bool):
            return DEFAULT_RETRY_CODES
        if isinstance(value, int):
            return frozenset({value})
        if isinstance(value, (list, tuple, set, frozenset)) and all(
            isinstance(code, int) and not isinstance(code, bool) for code in value
        ):
            return frozenset(value)
        return DEFAULT_RETRY_CODES

    @field_validator("batch_concurrency", mode="before")
    @classmethod
    def _positive_concurrency(cls, value: Any) -> int:
        return max(int(value), 1)

    @field_validator("allowed_protocols", mode="before")
    @classmethod
    def _lowercase_protocols(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            return tuple(str(p).lower() for p in value)
        return value

    def transport_key(self) -> tuple:
        """Values that the underlying httpx client is built from."""
        return tuple(getattr(self, name) for name in TRANSPORT_FIELDS)


def merge(base: BankConfig, overrides: Optional[Mapping[str, Any]] = None) -> BankConfig:
    """Return a new configuration with ``overrides`` applied on top of ``base``.

    Raises
    ------
    ConfigurationError
        If an override names an unknown option or has an unusable value
    """
    data = dict(base)
    data.update(overrides or {})
    try:
        return BankConfig.model_validate(data)
    except (ValidationError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


class ConfigLayer:
    """The ``(active, baseline)`` configuration pair of a client.

    ``apply`` installs one-shot overrides on top of the baseline and
    ``restore`` drops them again. ``apply_global`` moves the baseline
    itself.
    """

    def __init__(self, defaults: BankConfig, overrides: Optional[Mapping[str, Any]] = None):
        self.defaults = defaults
        self.baseline = merge(defaults, overrides)
        self.active = self.baseline
        # The one-shot overrides that produced ``active``
        self.overrides: dict[str, Any] = {}

    @property
    def settled(self) -> bool:
        return self.active == self.baseline

    def apply(self, overrides: Optional[Mapping[str, Any]] = None) -> bool:
        """Apply one-shot overrides. Returns True when ``active`` changed.

        Re-applying the overrides currently in effect is a no-op. Applying
        different overrides while earlier ones are still pending first
        promotes ``active`` to the baseline, so the earlier overrides
        outlive the next request.
        """
        overrides = dict(overrides or {})
        if overrides == self.overrides:
            return False
        base = self.baseline if self.settled else self.active
        merged = merge(base, overrides)
        changed = merged != self.active
        self.baseline = base
        self.active = merged
        self.overrides = overrides
        return changed

    def apply_global(self, overrides: Optional[Mapping[str, Any]] = None) -> bool:
        """Apply overrides to both ``active`` and ``baseline``."""
        merged = merge(self.baseline, overrides)
        changed = merged != self.active
        self.active = self.baseline = merged
        self.overrides = {}
        return changed

    def restore(self) -> bool:
        """Return to the baseline. Returns True when ``active`` changed."""
        self.overrides = {}
        if self.settled:
            return False
        self.active = self.baseline
        return True


class ClientSettings(BaseModel):
    """Credentials and overrides read from the environment."""

    bank: str = Field(default="sbanken")
    client_id: str = Field(default="")
    client_secret: str = Field(default="")

    auth_retries: Optional[int] = Field(default=None)
    batch_concurrency: Optional[int] = Field(default=None)
    timeout: Optional[float] = Field(default=None)
    auth_init: bool = Field(default=False)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_environment(cls) -> "ClientSettings":
        """Create settings from ``PSD2_*`` environment variables."""
        config_data: dict[str, Any] = {
            "bank": _env("BANK", "sbanken").lower(),
            "client_id": _env("CLIENT_ID"),
            "client_secret": _env("CLIENT_SECRET"),
            "auth_init": _env_flag("AUTH_INIT"),
        }
        for key in ("auth_retries", "batch_concurrency", "timeout"):
            if value := _env(key.upper()):
                config_data[key] = value

        try:
            return cls(**config_data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid environment configuration: {exc}") from exc

    def overrides(self) -> dict[str, Any]:
        """Client configuration overrides carried by these settings."""
        data: dict[str, Any] = {"auth_init": self.auth_init}
        for key in ("auth_retries", "batch_concurrency", "timeout"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def _env(name: str, default: str = "") -> str:
    """Read ``PSD2_<name>``, then the integration aliases registered for ``name``."""
    for key in (ENV_PREFIX + name, *ENV_ALIASES.get(name, ())):
        value = os.getenv(key, "").strip()
        if value:
            return value
    return default


def _env_flag(name: str, default: bool = False) -> bool:
    value = _env(name).lower()
    if not value:
        return default
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean flag, got {value!r}")


# Global settings instance
_settings: Optional[ClientSettings] = None


def get_settings(*, reload: bool = False) -> ClientSettings:
    """Get the global settings instance."""
    global _settings

    if _settings is None or reload:
        _settings = ClientSettings.from_environment()

    return _settings


def load_dotenv_for_sdk(path: Optional[Path] = None, *, override: bool = False) -> bool:
    """Load environment variables from a .env file.

    Looks for ``.env.<PSD2_ENV>`` first, then ``.env``, in the current
    working directory. Returns True when a file was loaded.
    """
    if path is None:
        mode = os.getenv("PSD2_ENV", "").lower()
        path = Path.cwd() / (f".env.{mode}" if mode else ".env")
        if not path.exists():
            path = Path.cwd() / ".env"

    if path.exists():
        return load_dotenv(path, override=override)
    return False
