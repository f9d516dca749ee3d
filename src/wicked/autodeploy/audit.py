"""Structured audit log of the changes a provisioning run makes."""

from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_audit_logging(*, log_level: str | int, json_format: bool) -> None:
    # Level names follow the stdlib logging ones
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    processors = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """Records every write made against the gateway or the cluster.

    Credential values never reach the log; secrets are described by the
    keys they hold.
    """

    def __init__(self, enabled: bool = True, logger: Any = None):
        self._enabled = enabled
        self._logger = logger or structlog.get_logger("audit")

    def log_change(self, event: str, **fields: Any) -> None:
        """Log one change, e.g. ``application_created``."""
        if not self._enabled:
            return
        self._logger.info(event=event, **fields)

    def log_failure(self, error: Exception, **fields: Any) -> None:
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "event": "provisioning_failed",
            "error": str(error),
            "error_type": type(error).__name__,
        }
        status_code = getattr(error, "status_code", None)
        if status_code is not None:
            log_data["status_code"] = status_code
        log_data.update(fields)

        self._logger.error(**log_data)
