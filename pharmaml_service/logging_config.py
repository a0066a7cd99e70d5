"""
logging_config.py — Centralized Logging Configuration for the PharmaML Service

This module configures unified logging behavior for the entire application.
It ensures that all modules log messages consistently to both console and file.

Features:
    • Combined console and file logging output
    • Process ID and logger name tagging for multi-process visibility
    • Masking of PharmaML secrets (CleSecrete element, X-PharmaML-Secret header)
    • Reduced verbosity for external dependencies (httpx, httpcore)
"""

import logging
import os
import re
import sys

PHARMAML_LOG_FILE = os.environ.get("PHARMAML_LOG_FILE", "pharmaml_transmissions.log")
PHARMAML_LOG_LEVEL = os.environ.get("PHARMAML_LOG_LEVEL", "INFO")

SECRET_MASK = "****"
_SECRET_PATTERNS = (
    re.compile(r"(<(?:\w+:)?CleSecrete>)[^<]*(</(?:\w+:)?CleSecrete>)"),
    re.compile(r"(X-PharmaML-Secret['\"]?\s*[:=]\s*['\"]?)[^'\",\s}]+()", re.IGNORECASE),
)


class SecretMaskingFilter(logging.Filter):
    """Replaces secret values in the rendered message before any handler writes it."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = message
        for pattern in _SECRET_PATTERNS:
            masked = pattern.sub(rf"\g<1>{SECRET_MASK}\g<2>", masked)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(log_file: str = PHARMAML_LOG_FILE, level: str = PHARMAML_LOG_LEVEL):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO (default, PHARMAML_LOG_LEVEL)
        - Log format: timestamp, log level, process ID, logger name and message
        - Output destinations:
            1. Console (stdout): real-time logs, Docker/Kubernetes compatible
            2. File: 'pharmaml_transmissions.log' (persistent log, PHARMAML_LOG_FILE)
        - Secret masking on every handler
        - Reduced verbosity for third-party libraries such as httpx

    An empty log_file disables the file handler.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.addFilter(SecretMaskingFilter())

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        handlers=handlers
    )

    # Reduce verbosity from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: Logger following the global format and handlers.
    """
    return logging.getLogger(name)
