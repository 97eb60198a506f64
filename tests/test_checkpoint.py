import pytest

from indexer.checkpoint import Checkpoint, CheckpointError, CursorRegressionError
from indexer.cursor import (
    BlockCursor,
    NoCursor,
    TransactionCursor,
    cursor_from_dict,
    cursor_to_dict,
    is_regression,
)


def test_checkpoint_read_none(tmp_path):
    cp = Checkpoint(str(tmp_path / "ckpt.json"))
    assert cp.get() == NoCursor()


def test_checkpoint_read_and_update(tmp_path):
    cp = Checkpoint(str(tmp_path / "ckpt.json"))
    cp.update(BlockCursor(500))
    assert cp.get() == BlockCursor(500)
    cp.update(BlockCursor(1000))
    assert Checkpoint(str(tmp_path / "ckpt.json")).get() == BlockCursor(1000)


def test_checkpoint_transaction_cursor(tmp_path):
    cp = Checkpoint(str(tmp_path / "ckpt.json"))
    cp.update(TransactionCursor("5sig"))
    cp.update(TransactionCursor("6sig"))
    assert cp.get() == TransactionCursor("6sig")


def test_checkpoint_bad_json(tmp_path):
    cp_file = tmp_path / "ckpt.json"
    cp_file.write_text("not a valid json")
    cp = Checkpoint(str(cp_file))
    with pytest.raises(CheckpointError):
        _ = cp.get()


def test_checkpoint_unknown_cursor_type(tmp_path):
    cp_file = tmp_path / "ckpt.json"
    cp_file.write_text('{"cursor": {"type": "epoch", "value": 3}}')
    with pytest.raises(CheckpointError):
        Checkpoint(str(cp_file)).get()


def test_checkpoint_refuses_to_move_back(tmp_path):
    cp = Checkpoint(str(tmp_path / "ckpt.json"))
    cp.update(BlockCursor(1000))
    with pytest.raises(CursorRegressionError):
        cp.update(BlockCursor(500))
    with pytest.raises(CursorRegressionError):
        cp.update(NoCursor())
    assert cp.get() == BlockCursor(1000)


def test_cursor_dict_shape():
    assert cursor_to_dict(NoCursor()) == {"type": "none"}
    assert cursor_to_dict(BlockCursor(7)) == {"type": "block", "height": 7}
    assert cursor_from_dict({"type": "transaction", "signature": "abc"}) == TransactionCursor("abc")


def test_regression_rules():
    assert not is_regression(NoCursor(), BlockCursor(0))
    assert not is_regression(BlockCursor(5), BlockCursor(5))
    assert is_regression(BlockCursor(5), BlockCursor(4))
    assert is_regression(TransactionCursor("a"), NoCursor())
    assert is_regression(BlockCursor(5), TransactionCursor("a"))
    assert not is_regression(TransactionCursor("a"), TransactionCursor("b"))


def test_cursor_values_are_validated():
    with pytest.raises(ValueError):
        BlockCursor(-1)
    with pytest.raises(ValueError):
        TransactionCursor("")
