from __future__ import annotations

import logging
import os
from typing import Callable, Final, Optional

_LOGGER_ROOT: Final[str] = "cctp.bridge"
LOG_LEVEL_ENV: Final[str] = "CCTP_BRIDGE_LOG_LEVEL"


def get_bridge_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the shared ``cctp.bridge`` namespace."""

    full_name = f"{_LOGGER_ROOT}.{name}" if name else _LOGGER_ROOT
    logger = logging.getLogger(full_name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s %(message)s", "%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(handler)
    level_name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.propagate = False
    return logger


def compose_log(
    log_callback: Optional[Callable[[str], None]], logger: Optional[logging.Logger] = None
) -> Callable[[str], None]:
    target = logger or get_bridge_logger()

    def _log(message: str) -> None:
        text = str(message)
        if log_callback is not None:
            try:
                log_callback(text)
            except Exception:
                target.exception("Bridge log callback raised an error.")
        target.info(text)

    return _log
