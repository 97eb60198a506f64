# indexer/client.py
from __future__ import annotations

from typing import List, Optional, Tuple

from indexer.base import (
    ClientOptions,
    NetworkClient,
    NetworkKind,
    UnsupportedNetworkError,
)
from indexer.cursor import IndexingCursor
from indexer.evm import EvmClient
from indexer.jobs import IndexerJob
from indexer.push import PushPayload
from indexer.solana import SolanaClient


class UnsupportedClient(NetworkClient):
    """Declared network without an adapter. Every call fails."""

    kind = NetworkKind.UNSUPPORTED

    def fetch_jobs(self, cursor: IndexingCursor) -> Tuple[List[IndexerJob], IndexingCursor]:
        raise UnsupportedNetworkError(f"fetching is not supported for {self.network.value}")

    def handle_process(self, job: IndexerJob) -> Optional[List[PushPayload]]:
        raise UnsupportedNetworkError(f"processing is not supported for {self.network.value}")


def build_client(options: ClientOptions, transport=None) -> NetworkClient:
    """Pick the adapter for `options.network` once, at construction."""
    kind = options.network.kind
    if kind is NetworkKind.EVM:
        return EvmClient(options, transport=transport)
    if kind is NetworkKind.SOLANA:
        return SolanaClient(options, transport=transport)
    return UnsupportedClient(options)


__all__ = ["build_client", "UnsupportedClient"]
