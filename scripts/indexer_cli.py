from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from common.logging_setup import setup_logging
from common.settings import load_settings
from indexer import ClientOptions, Indexer, RetryPolicy, build_client
from indexer.checkpoint import Checkpoint
from indexer.sink import MemorySink, WebhookSink

logger = logging.getLogger("indexer.cli")


def build_indexer(config_path: str) -> Indexer:
    st = load_settings(config_path)
    setup_logging(st.log_level)

    options = ClientOptions(
        network=st.network,
        rpc_url=st.rpc.url,
        api_token=st.rpc.api_token,
        contract_address=st.contract_address,
        page_size=st.indexer.page_size,
        timeout=st.rpc.timeout,
        max_retries=st.rpc.max_retries,
        backoff_seconds=st.rpc.backoff_seconds,
        backoff_cap=st.rpc.backoff_cap,
    )
    client = build_client(options)

    Path(st.checkpoint.file).parent.mkdir(parents=True, exist_ok=True)
    checkpoint = Checkpoint(st.checkpoint.file)

    if st.push.url:
        sink = WebhookSink(st.push.url, token=st.push.token, timeout=st.push.timeout)
    else:
        logger.warning("push.url not set, payloads are kept in memory only")
        sink = MemorySink()

    retry = RetryPolicy(
        initial_delay=st.indexer.retry.initial_delay,
        factor=st.indexer.retry.factor,
        max_delay=st.indexer.retry.max_delay,
    )
    return Indexer(client, checkpoint, sink, interval=st.indexer.interval_ms / 1000.0, retry=retry)


async def _run(indexer: Indexer, once: bool) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, indexer.stop)
        except NotImplementedError:  # pragma: no cover
            pass
    await indexer.run(max_iterations=1 if once else None)


def main(argv=None) -> None:
    p = argparse.ArgumentParser(description="Index HAPI protocol events from one network")
    p.add_argument("--config", default="config.yaml", help="Path to the YAML settings file")
    p.add_argument("--once", action="store_true", help="Run a single iteration and exit")
    args = p.parse_args(argv)

    try:
        indexer = build_indexer(args.config)
    except (OSError, RuntimeError, ValueError) as e:
        print(f"ERROR {e}", file=sys.stderr)
        sys.exit(2)

    logger.info("indexing %s contract %s", indexer.client.network.value, indexer.client.options.contract_address)
    asyncio.run(_run(indexer, args.once))


if __name__ == "__main__":
    main()
