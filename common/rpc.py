# common/rpc.py
from __future__ import annotations

import logging
import random
import time
from typing import Any, List, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
RATE_LIMIT_CODES = (429, -32005)
# node is behind the requested slot or block; the same call succeeds later
NODE_LAG_CODES = (-32004, -32014, -32016)
NODE_LAG_MESSAGES = ("header not found", "block not available", "minimum context slot")


class RpcError(RuntimeError):
    """JSON-RPC error answered by the node."""

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        super().__init__(f"RPC error for {method}: {error}")


class RpcTransportError(RuntimeError):
    """Transport failure that survived every retry. Safe to retry later."""


class _Retryable(Exception):
    pass


class RpcTransport:
    """
    Minimal JSON-RPC 2.0 client over HTTP POST.

    Timeouts, connection errors, HTTP 429/5xx and rate limit errors in the
    JSON body are retried with exponential backoff and jitter. Other JSON-RPC
    errors raise RpcError right away.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        backoff_cap: float = 8.0,
        headers: Optional[dict] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self.backoff_cap = backoff_cap
        self.headers = dict(headers or {})
        self._next_id = 1

    def _backoff(self, attempt: int) -> float:
        sleep_s = min(self.backoff_cap, self.backoff_seconds * (2 ** attempt))
        return sleep_s * (0.8 + 0.4 * random.random())

    def _post_once(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        self._next_id += 1
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout, headers=self.headers)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise _Retryable(f"{type(e).__name__}: {e}") from e

        if resp.status_code in RETRYABLE_STATUS:
            raise _Retryable(f"HTTP {resp.status_code}")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise RpcError(method, str(e)) from e

        data = resp.json()
        if "error" in data and data["error"] is not None:
            err = data["error"]
            code = err.get("code") if isinstance(err, dict) else None
            text = str(err).lower()
            if code in RATE_LIMIT_CODES or "rate limit" in text or "too many" in text:
                raise _Retryable(f"throttled: {err}")
            if code in NODE_LAG_CODES or any(m in text for m in NODE_LAG_MESSAGES):
                raise _Retryable(f"node behind: {err}")
            raise RpcError(method, err)
        return data.get("result")

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Return the `result` field of a JSON-RPC call."""
        params = list(params or [])
        attempt = 0
        while True:
            try:
                return self._post_once(method, params)
            except _Retryable as e:
                if attempt >= self.max_retries:
                    raise RpcTransportError(
                        f"RPC {method} failed after {attempt + 1} attempts url={self.url}: {e}"
                    ) from e
                delay = self._backoff(attempt)
                logger.warning("RPC %s retry %d in %.2fs: %s", method, attempt + 1, delay, e)
                time.sleep(delay)
                attempt += 1
