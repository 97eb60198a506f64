from .base import (
    ClientOptions,
    DecodeError,
    HapiNetwork,
    IndexerError,
    JobMismatchError,
    NetworkClient,
    NetworkKind,
    TransientError,
    UnsupportedNetworkError,
)
from .client import UnsupportedClient, build_client
from .cursor import BlockCursor, IndexingCursor, NoCursor, TransactionCursor
from .jobs import IndexerJob, LogJob, TransactionJob
from .loop import Indexer, RetryPolicy
from .push import PushData, PushEvent, PushPayload

__all__ = [
    "BlockCursor",
    "ClientOptions",
    "DecodeError",
    "HapiNetwork",
    "Indexer",
    "IndexerError",
    "IndexerJob",
    "IndexingCursor",
    "JobMismatchError",
    "LogJob",
    "NetworkClient",
    "NetworkKind",
    "NoCursor",
    "PushData",
    "PushEvent",
    "PushPayload",
    "RetryPolicy",
    "TransactionCursor",
    "TransactionJob",
    "TransientError",
    "UnsupportedClient",
    "UnsupportedNetworkError",
    "build_client",
]
