from __future__ import annotations

import json
import logging
from typing import Any

from .exceptions import ConfigurationError

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: str = "INFO") -> None:
    """Root logging for the CLI. Unknown level names are a configuration error."""
    name = level.upper()
    if name not in LEVELS:
        raise ConfigurationError(f'Invalid log level "{level}" (expected one of {", ".join(LEVELS)})')
    logging.basicConfig(level=getattr(logging, name), format="%(message)s")
    if name != "DEBUG":
        # one line per pooled connection otherwise
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str = "asterix_ycsb") -> logging.Logger:
    return logging.getLogger(name)


def log_json(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, ensure_ascii=False))
