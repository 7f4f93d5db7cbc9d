"""Request queue and concurrent batch execution."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from ._http import HTTPClient
from .request_builder import PendingRequest
from .responses import ApiFailure, BatchResult, Decoder, TransportFailure, translate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedRequest:
    """Handle for a request that was buffered instead of sent."""

    position: int
    request: PendingRequest
    return_type: str = "json"


class RequestQueue:
    """FIFO buffer of built requests."""

    def __init__(self) -> None:
        self._items: deque[QueuedRequest] = deque()
        self._submitted = 0

    def __len__(self) -> int:
        return len(self._items)

    def append(self, request: PendingRequest, return_type: str = "json") -> QueuedRequest:
        item = QueuedRequest(position=self._submitted, request=request, return_type=return_type)
        self._submitted += 1
        self._items.append(item)
        return item

    def take(self, limit: Optional[int] = None) -> list[QueuedRequest]:
        """Remove and return up to ``limit`` items from the front (all if no limit)."""
        if limit is None or limit <= 0:
            limit = len(self._items)
        return [self._items.popleft() for _ in range(min(limit, len(self._items)))]


async def run_batch(
    http: HTTPClient,
    items: list[QueuedRequest],
    concurrency: int,
    decoder_for: Callable[[str], Decoder],
) -> list[BatchResult]:
    """Send ``items`` with at most ``concurrency`` in flight.

    Results come back in submission order. Items are sent once each;
    a failing item yields an ``ApiFailure`` or ``TransportFailure`` in
    its own slot without affecting its siblings. Any exception raised
    while sending or decoding one item, including one from a redirect
    callback or an integration decoder, ends up in that item's slot.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(concurrency)

    async def send_one(client: httpx.AsyncClient, item: QueuedRequest) -> BatchResult:
        async with semaphore:
            try:
                response = await http.asend(client, item.request)
            except httpx.HTTPStatusError as exc:
                return ApiFailure.from_response(exc.response)
        return translate(response, decoder_for(item.return_type))

    logger.debug("Flushing %d queued requests, concurrency %d", len(items), concurrency)
    async with http.async_client() as client:
        outcomes = await asyncio.gather(
            *(send_one(client, item) for item in items), return_exceptions=True
        )
    return [_slot(item, outcome) for item, outcome in zip(items, outcomes)]


def _slot(item: QueuedRequest, outcome: Any) -> BatchResult:
    if isinstance(outcome, Exception):
        logger.error(
            "Batched %s %s failed: %s", item.request.method, item.request.url, outcome
        )
        return TransportFailure(outcome)
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome
