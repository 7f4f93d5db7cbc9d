"""Turn ``(method, endpoint, parameters, headers)`` into a ready-to-send request."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from .exceptions import InvalidMethodError, InvalidParametersError

VALID_METHODS = ("GET", "POST", "DELETE", "HEAD", "OPTIONS", "PATCH", "PUT")
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPES = frozenset({"application/json", "text/json"})

_ABSOLUTE_URL = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

Parameters = Union[Mapping[str, Any], str, bytes, None]


@dataclass(frozen=True)
class PendingRequest:
    """A fully built request that has not been sent yet."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


def normalize_method(method: str) -> str:
    """Uppercase ``method`` and check it against ``VALID_METHODS``."""
    normalized = method.upper()
    if normalized not in VALID_METHODS:
        raise InvalidMethodError(normalized, VALID_METHODS)
    return normalized


def is_absolute(endpoint: str) -> bool:
    return bool(_ABSOLUTE_URL.match(endpoint))


def resolve_endpoint(endpoint: str, base: Optional[str]) -> str:
    """Prefix a relative ``endpoint`` with ``base``, joined by a single slash."""
    if is_absolute(endpoint) or not base:
        return endpoint
    if not endpoint:
        return base
    return base.rstrip("/") + "/" + endpoint.lstrip("/")


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(v) for v in value]
    return value


def _encodable(parameters: Mapping[str, Any]) -> dict[str, Any]:
    """Prepare a mapping for URL encoding; keys whose value is None are left out."""
    return {k: _query_value(v) for k, v in parameters.items() if v is not None}


def merge_query(url: str, parameters: Optional[Mapping[str, Any]] = None) -> str:
    """Overlay ``parameters`` on the query string of ``url``.

    New values win on key collisions and a None value removes its key.
    Components missing from ``url`` stay missing, so merging an empty
    mapping returns the URL unchanged apart from query normalization.
    """
    parts = urlsplit(url)
    query: dict[str, Any] = parse_qs(parts.query, keep_blank_values=True)
    for key, value in (parameters or {}).items():
        if value is None:
            query.pop(key, None)
        else:
            query[key] = _query_value(value)

    # parse_qs hands back single values as one-element lists
    flat = {k: v[0] if isinstance(v, list) and len(v) == 1 else v for k, v in query.items()}
    encoded = urlencode(flat, doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, encoded, parts.fragment))


def _find_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return key
    return None


def merge_headers(*layers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Merge header mappings left to right, matching names case-insensitively."""
    merged: dict[str, str] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            existing = _find_header(merged, key)
            if existing is not None:
                del merged[existing]
            merged[key] = value
    return merged


def media_type(headers: Mapping[str, str]) -> str:
    key = _find_header(headers, "Content-Type")
    if key is None:
        return ""
    return headers[key].split(";", 1)[0].strip().lower()


def is_json(content_type: str) -> bool:
    return content_type in JSON_CONTENT_TYPES or content_type.endswith("+json")


def build_request(
    method: str,
    endpoint: str,
    parameters: Parameters = None,
    headers: Optional[Mapping[str, str]] = None,
    *,
    default_headers: Optional[Mapping[str, str]] = None,
    authorize: Optional[Callable[[], str]] = None,
    base_endpoint: Optional[str] = None,
) -> PendingRequest:
    """Compose a ``PendingRequest``.

    Headers are merged as defaults, then per-call headers. ``authorize``
    is only called when neither layer set a non-empty ``Authorization``
    header. For POST, PUT and PATCH the parameters become the body
    (JSON for JSON content types, form-encoded for other mappings, as-is
    for strings and bytes); for the other methods they are folded into
    the query string.

    Raises
    ------
    InvalidMethodError
        If ``method`` is not one of ``VALID_METHODS``
    InvalidParametersError
        If ``parameters`` is not a mapping, string, bytes or None
    """
    method = normalize_method(method)
    if parameters is not None and not isinstance(parameters, (Mapping, str, bytes)):
        raise InvalidParametersError(
            "Invalid type. Parameters sent with the request have to be a mapping, "
            f"a string, bytes or None, not {type(parameters).__name__}"
        )

    merged = merge_headers(default_headers, headers)
    auth_key = _find_header(merged, "Authorization")
    if auth_key is None or not merged[auth_key]:
        if auth_key is not None:
            del merged[auth_key]
        if authorize is not None:
            merged["Authorization"] = authorize()

    url = resolve_endpoint(endpoint, base_endpoint)
    body: Optional[bytes] = None

    if method in BODY_METHODS:
        content_type = media_type(merged)
        if isinstance(parameters, bytes):
            body = parameters
        elif isinstance(parameters, str):
            body = parameters.encode("utf-8")
        elif parameters is not None and is_json(content_type):
            body = json.dumps(parameters, separators=(",", ":")).encode("utf-8")
        elif parameters is not None:
            if not content_type:
                merged["Content-Type"] = FORM_CONTENT_TYPE
            body = urlencode(_encodable(parameters), doseq=True).encode("utf-8")
    elif parameters:
        if isinstance(parameters, bytes):
            parameters = parameters.decode("utf-8")
        if isinstance(parameters, str):
            parsed = parse_qs(parameters, keep_blank_values=True)
            parameters = {k: v[0] if len(v) == 1 else v for k, v in parsed.items()}
        url = merge_query(url, parameters)

    return PendingRequest(method=method, url=url, headers=merged, body=body)
