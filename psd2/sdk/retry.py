"""Retry policy for requests that fail with an HTTP status.

A failing status from the retryable set triggers an auth refresh and a
full re-run of the request. The loop carries an immutable ``RetryState``
so nothing on the client instance has to be reset between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

import httpx

from .config import UNLIMITED_RETRIES, BankConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryState:
    attempt_count: int = 0
    bound: int = 3
    retryable_statuses: frozenset[int] = frozenset({500})

    @classmethod
    def from_config(cls, config: BankConfig) -> "RetryState":
        return cls(bound=config.auth_retries, retryable_statuses=config.auth_retries_codes)

    @property
    def exhausted(self) -> bool:
        return self.bound != UNLIMITED_RETRIES and self.attempt_count > self.bound

    def failed(self) -> "RetryState":
        return replace(self, attempt_count=self.attempt_count + 1)

    def should_retry(self, status_code: int) -> bool:
        return not self.exhausted and status_code in self.retryable_statuses


def send_with_retry(
    attempt: Callable[[], httpx.Response],
    refresh: Callable[[], Any],
    state: RetryState,
) -> httpx.Response:
    """Run ``attempt`` until it succeeds or the retry policy gives up.

    ``attempt`` must rebuild and send the whole request, and raise
    ``httpx.HTTPStatusError`` for non-2xx responses. Errors without a
    response (connection failures) propagate untouched. When the policy
    gives up, the last failing response is returned rather than raised.
    """
    while True:
        try:
            return attempt()
        except httpx.HTTPStatusError as exc:
            response = exc.response
            state = state.failed()

        status = response.status_code
        if not state.should_retry(status):
            if state.exhausted:
                logger.warning(
                    "Giving up on %s %s after %d attempts (HTTP %d)",
                    response.request.method,
                    response.request.url,
                    state.attempt_count,
                    status,
                )
            return response

        logger.info(
            "HTTP %d from %s %s, refreshing auth token and retrying (attempt %d)",
            status,
            response.request.method,
            response.request.url,
            state.attempt_count + 1,
        )
        refresh()
