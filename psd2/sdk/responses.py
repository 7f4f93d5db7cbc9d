"""Typed results and response decoders."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

import httpx

from .exceptions import HTTPError, UnsupportedResponseTypeError

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], Any]

DEFAULT_RETURN_TYPE = "json"


def decode_raw(body: bytes) -> bytes:
    return body


def decode_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def decode_json(body: bytes) -> Any:
    """Parse a JSON body; malformed or empty bodies decode to None."""
    if not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        logger.debug("Response body is not valid JSON: %s", exc)
        return None


DECODERS: dict[str, Decoder] = {
    "raw": decode_raw,
    "text": decode_text,
    "json": decode_json,
}


def resolve_decoder(return_type: str, extra: Optional[Mapping[str, Decoder]] = None) -> Decoder:
    """Look up the decoder registered for ``return_type``.

    Raises
    ------
    UnsupportedResponseTypeError
        If neither the built-in nor the ``extra`` decoders know the tag
    """
    decoders = {**DECODERS, **(extra or {})}
    tag = return_type.lower()
    if tag not in decoders:
        raise UnsupportedResponseTypeError(return_type, sorted(decoders))
    return decoders[tag]


@dataclass(frozen=True)
class Success:
    """A 2xx response decoded with the requested decoder."""

    value: Any
    status_code: int = 200
    headers: Mapping[str, str] = field(default_factory=dict)

    ok = True

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class ApiFailure:
    """A non-2xx response that was returned instead of raised.

    Attributes
    ----------
    status_code : int
        The HTTP status code of the last response received
    body : bytes
        The undecoded response body
    """

    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    ok = False

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiFailure":
        return cls(
            status_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
        )

    @property
    def text(self) -> str:
        return decode_text(self.body)

    def json(self) -> Any:
        return decode_json(self.body)

    def unwrap(self) -> Any:
        raise HTTPError(self.status_code, self.text)


@dataclass(frozen=True)
class TransportFailure:
    """A batch slot whose request raised instead of yielding a result.

    Connection failures, redirect-policy violations and errors raised
    while decoding the body all land here.
    """

    error: Exception

    ok = False

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Success, ApiFailure]
BatchResult = Union[Success, ApiFailure, TransportFailure]


def translate(response: httpx.Response, decoder: Decoder) -> Success:
    return Success(
        value=decoder(response.content),
        status_code=response.status_code,
        headers=dict(response.headers),
    )
