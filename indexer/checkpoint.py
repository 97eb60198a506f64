import json
import os

from indexer.cursor import (
    IndexingCursor,
    NoCursor,
    cursor_from_dict,
    cursor_to_dict,
    is_regression,
)


class CheckpointError(Exception):
    pass


class CursorRegressionError(CheckpointError):
    pass


class Checkpoint:
    """File backed cursor for one network."""

    def __init__(self, path: str):
        self.path = path

    def get(self) -> IndexingCursor:
        """Return the committed cursor, or NoCursor if nothing was committed."""
        if not os.path.exists(self.path):
            return NoCursor()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            if "cursor" in data:
                return cursor_from_dict(data["cursor"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}")
        return NoCursor()

    def update(self, cursor: IndexingCursor):
        """Atomically replace the checkpoint with cursor."""
        previous = self.get()
        if is_regression(previous, cursor):
            raise CursorRegressionError(f"cursor would move back from {previous!r} to {cursor!r}")
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w") as f:
                json.dump({"cursor": cursor_to_dict(cursor)}, f)
            os.replace(tmp, self.path)
        except OSError as e:
            raise CheckpointError(f"Failed to write checkpoint: {e}")
