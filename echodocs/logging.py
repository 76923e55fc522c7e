"""Logging utilities for echodocs pipelines."""

from __future__ import annotations

import logging
import re
from pathlib import Path

_LOGGER_NAME = "echodocs"

# GitHub classic/fine-grained tokens and OpenAI-style keys.
_SECRET_PATTERN = re.compile(
    r"(gh[pousr]_[A-Za-z0-9]{16,}|github_pat_[A-Za-z0-9_]{20,}|sk-[A-Za-z0-9_\-]{16,}|Bearer\s+\S+)"
)


class SecretRedactingFilter(logging.Filter):
    """Masks credential-looking substrings before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub("[redacted]", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the echodocs hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the echodocs logger with console output and an optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI/service start-ups must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    redactor = SecretRedactingFilter()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.addFilter(redactor)
    stream_handler.setFormatter(logging.Formatter("[echodocs] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(redactor)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["SecretRedactingFilter", "configure_logging", "get_logger"]
