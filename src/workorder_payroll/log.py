"""Logging setup.

Modules log through ``logging.getLogger(__name__)`` and pass structured
fields with ``extra=``. The formatter appends those fields as ``key=value``
pairs so a failed transition reads like::

    WARNING workorder_payroll.services.work_order_service Transition rejected | actor=alice error_kind=guard_failure ...
"""

from __future__ import annotations

import logging

# Attributes present on every LogRecord; anything else came from ``extra=``.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Formatter that renders ``extra`` fields after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if not fields:
            return base
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{base} | {rendered}"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the package logger."""
    package_logger = logging.getLogger("workorder_payroll")
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if getattr(handler, "_workorder_payroll", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(
        KeyValueFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    handler._workorder_payroll = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
