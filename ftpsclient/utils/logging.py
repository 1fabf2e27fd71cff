"""Logging configuration for ftpsclient.

Provides centralized logging with secret redaction so that passwords
sent on the control connection are never written to logs.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional


APP_LOGGER = "ftpsclient"

# Secret patterns to redact from logs
SECRET_PATTERNS = [
    # PASS command on the wire
    (re.compile(r'(\bPASS )(?!\*+$)\S.*$', re.MULTILINE), r'\1[REDACTED]'),
    # Password in key/value formats
    (re.compile(r'(password["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(passwd["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    # FTP URLs with credentials
    (re.compile(r'(ftps?://)[^:/@\s]+:[^@\s]+@'), r'\1[REDACTED]@'),
]


def redact(message: str) -> str:
    """Remove secrets from a log message."""
    for pattern, replacement in SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecretRedactingFormatter(logging.Formatter):
    """Formatter that redacts secrets from log messages."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record, redacting any secrets."""
        return redact(super().format(record))


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True
) -> logging.Logger:
    """
    Configure ftpsclient logging with secret redaction.

    Args:
        level: Logging level (default INFO)
        log_file: Optional file path for log output
        console: Whether to output to the console (stderr)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = SecretRedactingFormatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = APP_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default is the application logger)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
