"""
Diagnostic logging setup.

stdout carries the MCP protocol, so diagnostics go to stderr or, when
configured, to a log file.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
ROOT_LOGGER_NAME = "CodexRelay"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the process-wide logging handlers and return the relay root logger."""
    if log_file:
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            filename=str(log_file),
            filemode='a',
            force=True,
        )
    else:
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            stream=sys.stderr,
            force=True,
        )
    return logging.getLogger(ROOT_LOGGER_NAME)
