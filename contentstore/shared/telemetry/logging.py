"""Logging configuration for contentstore."""

import logging
import sys

from contentstore.core.config import get_settings

# Client libraries under the providers; chatty at DEBUG (wire dumps, retries)
_CLIENT_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3", "httpx", "httpcore")


def setup_logging(level: int | None = None) -> None:
    """Configure process-wide logging to stdout.

    Level defaults to DEBUG when settings.debug is True, otherwise INFO.
    SDK and HTTP client loggers stay at WARNING unless debug is on, so
    provider log lines are not buried under request dumps.
    """
    debug = get_settings().debug
    log_level = level if level is not None else (logging.DEBUG if debug else logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    client_level = logging.DEBUG if debug else logging.WARNING
    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name (usually __name__)."""
    return logging.getLogger(name)
