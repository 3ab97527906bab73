"""Logging utilities for the Signeo MCP server."""

import logging
from collections.abc import Mapping
from typing import Any, Literal

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_SENSITIVE_KEYS = frozenset({"password", "userpassword", "sigsid", "session_id", "tpc", "cookie"})


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Args:
        name: the name of the logger, usually ``__name__``

    Returns:
        a logger instance
    """
    return logging.getLogger(name)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure logging for the server.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def redact_sensitive_data(
    data: Mapping[str, Any] | None,
    sensitive_keys: set[str] | frozenset[str] | None = None,
) -> Mapping[str, Any] | None:
    """Return a shallow copy with sensitive values replaced by "***".

    Parameters
    ----------
    data:
        Original mapping (typically tool arguments). If *None* the function
        simply returns *None*.
    sensitive_keys:
        Optional set of lower-case keys that should be hidden; defaults to
        credentials and tokens handled by the Signeo tools.
    """

    if data is None:
        return None

    sensitive_keys = sensitive_keys or DEFAULT_SENSITIVE_KEYS

    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in sensitive_keys:
            redacted[key] = "***"
        else:
            redacted[key] = value

    return redacted
