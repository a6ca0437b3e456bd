"""
Logging configuration for Outreach CRM.

Every module logs through logging.getLogger(__name__); records propagate up
to the 'outreachcrm' logger, which owns the handlers.

  Log file : $LOG_DIR/outreachcrm.log  (LOG_DIR defaults to <project>/logs)
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var, INFO when unset or unrecognised
  Console  : optional stderr handler at WARNING, used by `outreach run`

The heartbeat pings every few seconds, so urllib3's per-connection DEBUG
chatter is capped at WARNING regardless of LOG_LEVEL.

Log format per line
-------------------
    2026-10-19 14:32:01 | INFO     | outreachcrm.engine.sync | Reconciliation: remote changed, local state replaced
    2026-10-19 14:32:01 | INFO     | outreachcrm | OK   companies_list | 4ms
    2026-10-19 14:32:05 | WARNING  | outreachcrm.engine.sync | Remote upsert_contact failed: HTTP 502
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

LOGGER_NAME = "outreachcrm"

_LOG_DIR = Path(os.environ.get("LOG_DIR") or Path(__file__).parent.parent / "logs")
_LOG_FILE = _LOG_DIR / "outreachcrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3
_NOISY_LOGGERS = ("urllib3",)


def _level_from_env() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(console: bool = False) -> logging.Logger:
    """
    Attach the rotating file handler (once) and, when asked, a stderr handler
    (once). Safe to call on every CLI entry.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
        _LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.setLevel(_level_from_env())
        file_handler = logging.handlers.RotatingFileHandler(
            _LOG_FILE,
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(file_handler)

        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if console and not any(type(h) is logging.StreamHandler for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(console_handler)

    return logger


def log_call(func):
    """
    Trace a CLI command: DEBUG on entry, INFO with elapsed ms on return,
    ERROR with the exception on failure (re-raised unchanged).
    A keyword argument named 'password' is logged as ***.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(LOGGER_NAME)
        name = func.__name__
        start = time.perf_counter()

        parts = [repr(a) for a in args] + [
            f"{k}={'***' if k == 'password' else repr(v)}" for k, v in kwargs.items()
        ]
        logger.debug(f"CALL {name} | args=({', '.join(parts) or '-'})")

        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

        ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"OK   {name} | {ms}ms")
        return result

    return wrapper
