"""
Logging for Script CRM.

Everything logs under the 'scriptcrm' logger tree (modules use
logging.getLogger(__name__)), written to one rotating file:

  File     : $LOG_DIR/scriptcrm.log (LOG_DIR defaults to <project>/logs)
  Rotation : 5 MB x 3 backups
  Level    : LOG_LEVEL env var, INFO when unset or unknown

    configure_logging()          # once per process; repeat calls are no-ops

    @log_call
    def create_script(self, data, owner_id):
        ...

Lines written by @log_call:

    2026-10-18 14:32:01 | DEBUG    | CALL create_script | args=(ScriptService(collection='scripts'), {...}, 'u1')
    2026-10-18 14:32:01 | INFO     | OK   create_script | 4ms
    2026-10-18 14:32:01 | WARNING  | FAIL get_script | AccessDeniedError: Access denied to script abc | 0ms
    2026-10-18 14:32:01 | ERROR    | FAIL health | StorageError: Database error: ... | 12ms
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

from scriptcrm.engine.errors import AccessDeniedError, NotFoundError, ValidationError

_LOG_DIR = Path(os.environ.get("LOG_DIR") or Path(__file__).parent.parent / "logs")
_LOG_FILE = _LOG_DIR / "scriptcrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

# Script content payloads get long; each argument is cut to this many characters
_MAX_ARG_REPR = 120

# Caller mistakes rather than faults: logged at WARNING
_REJECTIONS = (ValidationError, NotFoundError, AccessDeniedError)


def configure_logging() -> logging.Logger:
    """Attach the rotating file handler to 'scriptcrm' (once) and return that logger."""
    logger = logging.getLogger("scriptcrm")
    if logger.handlers:
        return logger

    _LOG_DIR.mkdir(parents=True, exist_ok=True)

    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def _short(value) -> str:
    text = repr(value)
    if len(text) > _MAX_ARG_REPR:
        text = text[:_MAX_ARG_REPR - 3] + "..."
    return text


def _format_args(args, kwargs) -> str:
    parts = [_short(a) for a in args] + [f"{k}={_short(v)}" for k, v in kwargs.items()]
    return ", ".join(parts) or "-"


def log_call(func):
    """
    Trace a function: CALL on entry (DEBUG), OK with elapsed ms on return (INFO),
    FAIL with the exception on the way out. Rejections (validation, not found,
    access denied) are WARNING, anything else ERROR. Exceptions always re-raise.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("scriptcrm")
        name = func.__name__
        logger.debug(f"CALL {name} | args=({_format_args(args, kwargs)})")

        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            log = logger.warning if isinstance(exc, _REJECTIONS) else logger.error
            log(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

        logger.info(f"OK   {name} | {int((time.perf_counter() - start) * 1000)}ms")
        return result

    return wrapper
