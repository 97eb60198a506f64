# indexer/base.py
"""
indexer.base
Network client contract shared by every ledger kind.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from common.settings import DEFAULT_PAGE_SIZE, resolve_page_size
from indexer.cursor import IndexingCursor
from indexer.jobs import IndexerJob
from indexer.push import PushPayload


class IndexerError(Exception):
    pass


class UnsupportedNetworkError(IndexerError):
    pass


class JobMismatchError(IndexerError):
    """A job was handed to a client of a different ledger kind."""


class DecodeError(IndexerError):
    """Upstream data does not match the shape its event kind declares."""


class TransientError(IndexerError):
    """The iteration can be retried as is."""


class NetworkKind(str, Enum):
    EVM = "evm"
    SOLANA = "solana"
    UNSUPPORTED = "unsupported"


class HapiNetwork(str, Enum):
    ETHEREUM = "ethereum"
    BSC = "bsc"
    SEPOLIA = "sepolia"
    SOLANA = "solana"
    BITCOIN = "bitcoin"
    NEAR = "near"

    @property
    def kind(self) -> NetworkKind:
        if self in (HapiNetwork.ETHEREUM, HapiNetwork.BSC, HapiNetwork.SEPOLIA):
            return NetworkKind.EVM
        if self in (HapiNetwork.SOLANA, HapiNetwork.BITCOIN):
            return NetworkKind.SOLANA
        return NetworkKind.UNSUPPORTED


class ClientOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    network: HapiNetwork
    rpc_url: str
    contract_address: str
    api_token: Optional[str] = None
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 0.5
    backoff_cap: float = 8.0

    @field_validator("page_size", mode="before")
    @classmethod
    def lenient_page_size(cls, v):
        return resolve_page_size(v)


class NetworkClient(ABC):
    """
    One implementation per ledger kind.

    fetch_jobs returns the page strictly after `cursor` together with the
    cursor that resumes right after it. handle_process turns one job into
    payloads, or None when the event kind is not mapped.
    """

    kind: NetworkKind

    def __init__(self, options: ClientOptions):
        self.options = options

    @property
    def network(self) -> HapiNetwork:
        return self.options.network

    @abstractmethod
    def fetch_jobs(self, cursor: IndexingCursor) -> Tuple[List[IndexerJob], IndexingCursor]:
        raise NotImplementedError

    @abstractmethod
    def handle_process(self, job: IndexerJob) -> Optional[List[PushPayload]]:
        raise NotImplementedError

    def _mismatch(self, job: object) -> JobMismatchError:
        return JobMismatchError(
            f"{type(self).__name__} for {self.network.value} cannot process {type(job).__name__}"
        )
