"""Logging setup for bank sync.

Everything logs under the ``bank_sync`` logger hierarchy. The log file always
receives records at the configured level; stderr output is opt-in (``-v``).
"""

import logging
import sys
import time
from pathlib import Path
from typing import Callable, Optional

from bank_sync.errors import BankSyncError
from bank_sync.utils.sanitize import mask_iban, mask_secret

ROOT_LOGGER_NAME = "bank_sync"

# Default log file name
DEFAULT_LOG_FILE = "bank_sync.log"

# Failures the service reports as results rather than crashes
EXPECTED_ERRORS = (BankSyncError, ValueError)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Context keys masked before they reach a handler, with their masking rule
_MASKERS: dict[str, Callable[[str], str]] = {
    "secret_id": mask_secret,
    "secret_key": mask_secret,
    "token": mask_secret,
    "access": mask_secret,
    "refresh": mask_secret,
    "iban": mask_iban,
    "owner_name": lambda _: "***",
}


def mask_context(context: dict[str, object]) -> dict[str, object]:
    """Mask credentials and account identity in operation context.

    Secrets keep their last characters and IBANs their country and tail, so
    log lines can still be correlated.
    """
    masked: dict[str, object] = {}
    for key, value in context.items():
        masker = _MASKERS.get(key.lower())
        masked[key] = masker(str(value)) if masker and value is not None else value
    return masked


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
) -> logging.Logger:
    """Configure the ``bank_sync`` logger.

    Calling it again replaces the previous handlers, which lets the CLI
    start with defaults and reconfigure once settings.yaml is loaded.

    Args:
        level: Log level name; unknown names fall back to INFO.
        log_file: Path to log file (default: DEFAULT_LOG_FILE).
        console_output: Also log to stderr.

    Returns:
        The configured ``bank_sync`` logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    log_path = Path(log_file or DEFAULT_LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.addHandler(_handler(logging.FileHandler(log_path, encoding="utf-8"), numeric_level))

    if console_output:
        logger.addHandler(_handler(logging.StreamHandler(sys.stderr), numeric_level))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a module logger inside the ``bank_sync`` hierarchy."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class LogContext:
    """Log the start, outcome and duration of a service operation.

    Expected failures (BankSyncError such as missing keys or a network
    outage, and ValueError from argument validation) are reported at
    WARNING without a traceback, since callers turn them into failure
    results. Anything else is logged at ERROR with the traceback. Exceptions
    are never suppressed.
    """

    def __init__(self, logger: logging.Logger, operation: str, **context: object):
        self.logger = logger
        self.operation = operation
        self.context = context
        self._started = 0.0

    def __enter__(self) -> "LogContext":
        self._started = time.monotonic()
        details = ", ".join(f"{k}={v}" for k, v in mask_context(self.context).items())
        self.logger.debug(f"Starting {self.operation}" + (f": {details}" if details else ""))
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: object,
    ) -> bool:
        elapsed = time.monotonic() - self._started
        if exc_type is None:
            self.logger.debug(f"Completed {self.operation} in {elapsed:.2f}s")
        elif issubclass(exc_type, EXPECTED_ERRORS):
            self.logger.warning(f"{self.operation} failed: {exc_val}")
        else:
            self.logger.error(
                f"Unexpected error in {self.operation}: {exc_type.__name__}: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),  # type: ignore[arg-type]
            )
        return False
