"""
core/logs.py -- Logging setup shared by the CLI and any embedding process.

All loggers live under the "authcore" namespace (authcore.auth, authcore.db,
authcore.config) so an embedding application can tune the whole core with
one logger level.
"""

from __future__ import annotations

import logging
import re

_LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_CREDENTIALS_RE = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@]+@")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once. Later calls are no-ops (basicConfig semantics)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
    )


def mask_url(url: str) -> str:
    """Hide the user:password part of a database URL before it reaches a log line.

    >>> mask_url("postgresql://app:hunter2@db:5432/auth")
    'postgresql://***:***@db:5432/auth'
    """
    return _CREDENTIALS_RE.sub(lambda m: f"{m.group('scheme')}***:***@", url)
