# indexer/jobs.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class LogJob:
    """A raw eth_getLogs entry awaiting decode."""
    log: Dict[str, Any] = field(hash=False)

    @property
    def block_number(self) -> int:
        return _hex_to_int(self.log.get("blockNumber"))

    @property
    def log_index(self) -> int:
        return _hex_to_int(self.log.get("logIndex"))

    @property
    def tx_hash(self) -> str:
        return str(self.log.get("transactionHash") or "")


@dataclass(frozen=True)
class TransactionJob:
    """A transaction signature tied to the program address."""
    signature: str
    slot: Optional[int] = None


IndexerJob = Union[LogJob, TransactionJob]


def _hex_to_int(v) -> int:
    if v is None:
        return 0
    if isinstance(v, int):
        return v
    s = str(v).lower()
    return int(s, 16) if s.startswith("0x") else int(s)
