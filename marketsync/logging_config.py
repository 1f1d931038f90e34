"""Logging setup and structured acquisition events.

Acquisition attempts are reported as one JSON record per attempt so that
scrape health can be monitored from logs alone. The payload is both the log
message and the ``event`` attribute of the record.
"""

import json
import logging
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3")


def setup_logging(log_level: str = "INFO") -> None:
    """Configure the root logger for CLI and service use.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=level, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(logger: logging.Logger, level: int, **fields: Any) -> dict[str, Any]:
    """Emit a structured event record.

    Args:
        logger: Logger of the emitting module.
        level: Logging level, e.g. logging.INFO.
        **fields: Event fields (method, url, status, duration_ms, ...).

    Returns:
        The payload that was logged.
    """
    payload = {key: value for key, value in fields.items() if value is not None}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True), extra={"event": payload})
    return payload
