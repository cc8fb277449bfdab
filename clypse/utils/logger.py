# clypse/utils/logger.py
# access.log gets activity, error.log gets failures with their tracebacks.
# Keyword fields are appended to the message as key=value.

import logging
import os

from clypse import config

_PLAIN = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")


def _file_logger(name: str, filename: str, level: int) -> logging.Logger:
    lg = logging.getLogger(name)
    lg.setLevel(level)
    lg.propagate = False
    if not lg.handlers:  # already set up on reload
        os.makedirs(config.LOGS_PATH, exist_ok=True)
        handler = logging.FileHandler(os.path.join(config.LOGS_PATH, filename), encoding="utf-8", delay=True)
        handler.setFormatter(_PLAIN)
        lg.addHandler(handler)
    return lg


# observability.logger.configure_logging switches these handlers to JSON
access_logger = _file_logger("access", "access.log", logging.INFO)
error_logger = _file_logger("error", "error.log", logging.ERROR)


def _with_fields(message: str, fields: dict) -> str:
    if not fields:
        return message
    return message + " " + " ".join(f"{k}={v}" for k, v in fields.items())


def log_info(message: str, /, **fields) -> None:
    access_logger.info(_with_fields(message, fields))


def log_exception(e: Exception, context: str = "", **fields) -> None:
    """Log `e` and its traceback under `context`."""
    error_logger.error(
        _with_fields(f"{context}: {type(e).__name__}: {e}", fields),
        exc_info=(type(e), e, e.__traceback__),
    )
