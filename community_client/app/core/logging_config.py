"""
Logging set-up for the command line front end and embedding applications.

Library modules only call ``logging.getLogger(__name__)``.
``setup_logging`` attaches handlers to the root logger once, taking the
level and the optional log file from :mod:`community_client.app.core.config`
unless the caller overrides them.  Every handler it installs masks bearer
tokens so that a session token never reaches the console or a log file.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from community_client.app.core.config import settings


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP libraries that log every connection at DEBUG.
NOISY_LOGGERS = ("urllib3", "httpx")

_BEARER = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)


class TokenRedactingFilter(logging.Filter):
    """Replace ``Bearer <token>`` with ``Bearer ***`` in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _BEARER.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: Optional[str] = None, logfile: Optional[str] = None) -> None:
    """Configure the root logger for the client.

    Parameters
    ----------
    level : str, optional
        Level name, case insensitive.  Defaults to ``LOG_LEVEL``; unknown
        names fall back to ``INFO``.
    logfile : str, optional
        File to log to as well as the console.  Defaults to ``LOG_FILE``
        (no file when empty).
    """
    root = logging.getLogger()
    if root.handlers:
        # Already configured, by an earlier call or by the host application.
        return

    level = level or settings.log_level
    logfile = logfile or settings.log_file or None
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    redactor = TokenRedactingFilter()
    handlers = [logging.StreamHandler()]
    if logfile:
        log_path = Path(logfile).expanduser().resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))
