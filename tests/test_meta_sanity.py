import importlib

def test_core_modules_and_symbols_exist():
    mods = [
        ("common.settings", ["load_settings"]),
        ("common.rpc", ["RpcTransport"]),
        ("indexer", ["build_client", "Indexer"]),
        ("indexer.evm", ["EvmClient"]),
        ("indexer.solana", ["SolanaClient"]),
        ("indexer.checkpoint", ["Checkpoint"]),
        ("scripts.indexer_cli", ["main", "build_indexer"]),
    ]
    for mod_name, symbols in mods:
        mod = importlib.import_module(mod_name)
        for sym in symbols:
            assert hasattr(mod, sym), f"{mod_name} missing {sym}"
