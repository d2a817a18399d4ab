"""Logging filters that scrub bearer tokens and credentials."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Bearer\s+[\w\.-]+"
    r"|eyJ[\w-]+\.[\w-]+\.[\w-]+"
    r"|(?:token|password|secret)\"?\s*[:=]\s*\"?[^\"\s,}]+)",
    re.IGNORECASE,
)
_MARKER = "**REDACTED**"


def _scrub(value: object) -> object:
    if isinstance(value, str):
        return _SENSITIVE_PATTERN.sub(_MARKER, value)
    return value


class SensitiveFilter(logging.Filter):
    """Replace bearer tokens and credentials in log records with a marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_scrub(arg) for arg in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: _scrub(value) for key, value in record.args.items()}
        return True


__all__ = ["SensitiveFilter"]
