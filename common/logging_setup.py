"""
common.logging_setup

Set up standard logging for the indexer process.
"""
import logging
from typing import Union

NOISY_LOGGERS = ("urllib3", "requests")


def setup_logging(level: Union[int, str] = logging.INFO):
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    # connection pool chatter drowns the per-page indexing lines
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
