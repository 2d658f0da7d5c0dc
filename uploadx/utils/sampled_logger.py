"""Sampled logger for per-chunk log messages.

Provides utilities to reduce log spam on large uploads by only logging at
configurable intervals.
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


def make_sampled_logger(
    log_format: str,
    log_interval: int = 100,
    target_logger: logging.Logger | None = None,
    level: int = logging.INFO,
) -> Callable[..., None]:
    """Create a sampled logger that logs the first, last and every Nth chunk.

    Args:
        log_format: Format string for the log message. The first placeholder
                    receives the 1-based chunk number, remaining placeholders
                    receive format_args.
        log_interval: Log every Nth chunk (default 100)
        target_logger: Logger instance to use (default: module logger)
        level: Log level to use (default: INFO)

    Returns:
        A function: (chunk_idx, total_chunks, *format_args) -> None
    """
    _logger = target_logger or logger
    interval = max(1, log_interval)

    def log_sampled(
        chunk_idx: int,
        total_chunks: int,
        *format_args: object,
    ) -> None:
        is_first = chunk_idx == 0
        is_last = chunk_idx >= total_chunks - 1
        should_log = is_first or is_last or (chunk_idx + 1) % interval == 0

        if should_log:
            _logger.log(level, log_format, chunk_idx + 1, *format_args)

    return log_sampled
