from __future__ import annotations

import logging
from typing import Any


_default_root_logger = logging.getLogger("refsnap")


def create_stream_logging_handler(
    log_level: int, root_logger: logging.Logger = _default_root_logger
) -> logging.StreamHandler[Any]:
    """
    Attaches a single handler that emits refsnap logs to stderr.
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    root_logger.setLevel(log_level)
    root_logger.addHandler(stream_handler)

    return stream_handler
