"""
logging_config.py — Logging setup for the checkout service.

Call `setup_logging()` once at process start; modules then log through
`logging.getLogger(__name__)`. Records go to stdout and, unless
CHECKOUT_LOG_FILE is set to an empty string, to a log file.
"""

import logging
import os
import sys

LOG_FILE = os.environ.get("CHECKOUT_LOG_FILE", "checkout_service.log")
LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'


def setup_logging(log_file: str = LOG_FILE, level=logging.INFO):
    """Configures the root logger with a stdout handler and an optional file handler."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # httpx logs every request at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
