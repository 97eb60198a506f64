import pathlib

import pytest

from common.settings import DEFAULT_PAGE_SIZE, load_settings, resolve_page_size

ROOT = pathlib.Path(__file__).resolve().parents[1]

ENV_OVERRIDES = (
    "RPC_URL_OVERRIDE",
    "RPC_API_TOKEN",
    "INDEXER_PAGE_SIZE",
    "PUSH_URL",
    "CONTRACT_ADDRESS",
    "INDEXER_NETWORK",
)


def test_config_file_exists_and_has_placeholders():
    cfg = ROOT / "config.yaml"
    assert cfg.exists(), "config.yaml missing at project root"
    text = cfg.read_text(encoding="utf-8")

    forbidden = ["http://", "https://", "AKIA", "AIza", "secret:", "token:", "key:"]

    def safe(line: str) -> bool:
        if "${" in line:
            return True
        return not any(bad in line for bad in forbidden)

    assert all(safe(line) for line in text.splitlines()), "config.yaml contains potential secrets or live URLs"


def test_load_settings_with_placeholders(monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    st = load_settings(str(ROOT / "config.yaml"))
    assert st.rpc.url == "https://example.invalid"
    assert st.indexer.page_size == DEFAULT_PAGE_SIZE
    assert st.indexer.interval_ms == 100
    assert st.push.url is None
    assert st.rpc.api_token is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RPC_URL_OVERRIDE", "https://rpc.test")
    monkeypatch.setenv("INDEXER_NETWORK", "bsc")
    monkeypatch.setenv("INDEXER_PAGE_SIZE", "200")
    monkeypatch.setenv("PUSH_URL", "https://push.test/events")
    monkeypatch.setenv("RPC_API_TOKEN", "k-123")
    st = load_settings(str(ROOT / "config.yaml"))
    assert st.rpc.url == "https://rpc.test"
    assert st.network == "bsc"
    assert st.indexer.page_size == 200
    assert st.push.url == "https://push.test/events"
    assert st.rpc.api_token == "k-123"


def test_non_numeric_page_size_reverts_to_default(monkeypatch):
    monkeypatch.setenv("INDEXER_PAGE_SIZE", "lots")
    st = load_settings(str(ROOT / "config.yaml"))
    assert st.indexer.page_size == 500


def test_invalid_config_raises(tmp_path, monkeypatch):
    monkeypatch.delenv("RPC_URL_OVERRIDE", raising=False)
    cfg = tmp_path / "config.yaml"
    cfg.write_text("network: ethereum\nrpc:\n  url: ftp://nope\ncontract_address: '0x00'\n")
    with pytest.raises(RuntimeError):
        load_settings(str(cfg))


def test_resolve_page_size():
    assert resolve_page_size("  300 ") == 300
    assert resolve_page_size("3.5") == DEFAULT_PAGE_SIZE
    assert resolve_page_size(True) == DEFAULT_PAGE_SIZE
