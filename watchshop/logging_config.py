"""
logging_config.py: logging setup for the storefront service.

Console output always, an additional log file when LOG_FILE is configured.
Third-party loggers (SQLAlchemy engine echo, uvicorn access log) are kept at
WARNING so order processing messages stay readable.
"""

import logging
import sys
from typing import Optional

from watchshop import config

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """
    Configures the root logger once for the whole application.

    Args:
        level (str): log level name, defaults to config.LOG_LEVEL.
        log_file (str): optional path of a persistent log file, defaults to config.LOG_FILE.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = log_file or config.LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name):
    """Returns a logger that follows the global format and handlers."""
    return logging.getLogger(name)
