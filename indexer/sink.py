# indexer/sink.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import requests

from indexer.base import TransientError
from indexer.push import PushPayload

logger = logging.getLogger(__name__)


class DeliveryError(TransientError):
    pass


class PushSink:
    """Delivery collaborator. Must tolerate the same payload more than once."""

    async def push(self, payload: PushPayload) -> None:
        raise NotImplementedError


class MemorySink(PushSink):
    """Keeps payloads in arrival order. Used by tests and dry runs."""

    def __init__(self) -> None:
        self.payloads: List[PushPayload] = []

    async def push(self, payload: PushPayload) -> None:
        self.payloads.append(payload)


class WebhookSink(PushSink):
    """POSTs each payload as JSON to a single endpoint."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: float = 10.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    def _post(self, payload: PushPayload) -> None:
        headers = {"Content-Type": "application/json", "Idempotency-Key": payload.dedupe_key}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = requests.post(self.url, data=payload.to_json(), headers=headers, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise DeliveryError(f"push to {self.url} failed: {e}") from e
        if resp.status_code >= 300:
            raise DeliveryError(f"push to {self.url} answered {resp.status_code}")

    async def push(self, payload: PushPayload) -> None:
        await asyncio.to_thread(self._post, payload)
        logger.debug("pushed %s %s", payload.event.name.value, payload.dedupe_key)
