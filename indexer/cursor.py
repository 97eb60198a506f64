# indexer/cursor.py
"""
indexer.cursor
Resume positions for one network. A cursor is opaque to its store.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union


@dataclass(frozen=True)
class NoCursor:
    """Nothing has been committed yet."""


@dataclass(frozen=True)
class BlockCursor:
    # every block below height has been consumed
    height: int

    def __post_init__(self):
        if not isinstance(self.height, int) or self.height < 0:
            raise ValueError("height must be a non negative integer")


@dataclass(frozen=True)
class TransactionCursor:
    signature: str

    def __post_init__(self):
        if not isinstance(self.signature, str) or not self.signature:
            raise ValueError("signature must be a non empty string")


IndexingCursor = Union[NoCursor, BlockCursor, TransactionCursor]


def cursor_to_dict(cursor: IndexingCursor) -> Dict[str, Any]:
    if isinstance(cursor, NoCursor):
        return {"type": "none"}
    if isinstance(cursor, BlockCursor):
        return {"type": "block", "height": cursor.height}
    if isinstance(cursor, TransactionCursor):
        return {"type": "transaction", "signature": cursor.signature}
    raise TypeError(f"not a cursor: {cursor!r}")


def cursor_from_dict(data: Dict[str, Any]) -> IndexingCursor:
    kind = data.get("type")
    if kind == "none":
        return NoCursor()
    if kind == "block":
        return BlockCursor(int(data["height"]))
    if kind == "transaction":
        return TransactionCursor(str(data["signature"]))
    raise ValueError(f"unknown cursor type: {kind!r}")


def is_regression(previous: IndexingCursor, new: IndexingCursor) -> bool:
    """
    True if committing `new` after `previous` would move backwards.
    Transaction references carry no order of their own, so only a switch
    back to NoCursor or a lower block height counts.
    """
    if isinstance(previous, NoCursor):
        return False
    if isinstance(new, NoCursor):
        return True
    if isinstance(previous, BlockCursor) and isinstance(new, BlockCursor):
        return new.height < previous.height
    return type(previous) is not type(new)
