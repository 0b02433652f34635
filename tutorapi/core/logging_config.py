"""
Centralized logging configuration.

Handlers write `timestamp | level | module:line | message` lines to stdout
and, outside tests, to a log file rotated at midnight. Bearer tokens that
end up in a message are masked before any handler sees them.

Handler code logs its progress with `log_step`, which keeps the
`[TAG] step - {json details}` form the admin team greps for.
"""
import json
import logging
import re
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_BACKUP_DAYS = 14

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "sqlalchemy.engine", "groq", "google")

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.]+")

# Module-level flag to prevent duplicate handler registration
_logging_configured = False


class TokenMaskingFilter(logging.Filter):
    """Replace bearer tokens in log messages with `***`."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "Bearer" in message:
            record.msg = _BEARER_PATTERN.sub(r"\1***", message)
            record.args = None
        return True


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None, to_file: bool = True) -> logging.Logger:
    """
    Configure application-wide logging.

    Call once at application startup; later calls return the root logger
    untouched.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files. Defaults to 'logs/' in project root.
        to_file: Also write a rotating log file (captures DEBUG)

    Returns:
        Configured root logger instance
    """
    global _logging_configured

    root_logger = logging.getLogger()
    if _logging_configured:
        return root_logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    token_filter = TokenMaskingFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    console_handler.addFilter(token_filter)
    root_logger.addHandler(console_handler)

    log_file = None
    if to_file:
        if log_dir is None:
            log_dir = Path(__file__).parent.parent.parent / "logs"
        log_dir.mkdir(exist_ok=True)

        log_file = log_dir / "tutorapi.log"
        file_handler = TimedRotatingFileHandler(
            log_file, when="midnight", backupCount=LOG_BACKUP_DAYS, encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(token_filter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(logging.DEBUG)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True
    root_logger.debug(f"Logging configured: level={log_level}, file={log_file or '-'}")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, typically called with __name__."""
    return logging.getLogger(name)


def log_step(logger: logging.Logger, tag: str, step: str, **details: Any) -> None:
    """
    Log one step of a handler in the `[TAG] step - {details}` form.

    Example:
        >>> log_step(logger, "CHECK-SUBSCRIPTION", "User authenticated", user_id="abc")
        [CHECK-SUBSCRIPTION] User authenticated - {"user_id": "abc"}
    """
    if details:
        logger.info(f"[{tag}] {step} - {json.dumps(details, default=str)}")
    else:
        logger.info(f"[{tag}] {step}")


class LoggerMixin:
    """Adds a `self.logger` named after the class."""

    @property
    def logger(self) -> logging.Logger:
        return get_logger(self.__class__.__name__)
