import logging
import os
from typing import Optional, Union


_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _coerce_level(value: Optional[Union[str, int]]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a console logger under the ``bakery`` namespace.

    - Honors LOG_LEVEL (default INFO) and LOG_FILE (optional path, appended).
    - Configures each named logger once; repeated calls return it unchanged.
    """
    logger = logging.getLogger(f"bakery.{name}")
    if getattr(logger, "_bakery_configured", False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            logger.warning("LOG_FILE %s could not be opened; logging to the console only", log_file)
        else:
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    # Keep records out of the root logger; uvicorn configures its own handlers.
    logger.propagate = False
    setattr(logger, "_bakery_configured", True)
    return logger
