"""Formatting and parsing of human-readable document numbers.

A document number is ``prefix + zero-padded integer``, e.g. ``SAFT-00001``
(prefix ``"SAFT-"``, width 5). Values wider than the pad width are written in
full rather than truncated.
"""

from collections.abc import Iterable
from datetime import datetime

# Marker separating the prefix from a time-derived suffix in degraded mode.
# It keeps fallback numbers out of parse_suffix() and thus out of MAX(suffix).
FALLBACK_MARKER = "T"


def format_identifier(prefix: str, value: int, pad_width: int) -> str:
    """Format ``value`` as ``prefix`` followed by ``pad_width`` zero-padded digits."""
    if value < 0:
        raise ValueError(f"Document number value must not be negative, got {value}")
    return f"{prefix}{value:0{pad_width}d}"


def parse_suffix(identifier: str | None, prefix: str) -> int | None:
    """Return the numeric suffix of ``identifier`` or None if it does not parse.

    Foreign prefixes, empty or non-digit remainders (including fallback
    numbers) are not errors; they simply have no suffix.
    """
    if not identifier or not identifier.startswith(prefix):
        return None
    remainder = identifier[len(prefix) :]
    if not remainder or not remainder.isascii() or not remainder.isdigit():
        return None
    return int(remainder)


def max_suffix(identifiers: Iterable[str | None], prefix: str) -> int:
    """Highest parseable suffix among ``identifiers``, 0 when none parse."""
    suffixes = (parse_suffix(identifier, prefix) for identifier in identifiers)
    return max((suffix for suffix in suffixes if suffix is not None), default=0)


def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def format_fallback_identifier(prefix: str, millis: int) -> str:
    """Time-derived number used when the series counter cannot be trusted.

    ``SAFT-T1760870400123``: epoch milliseconds behind a marker, so it is
    wider than any dense number and never parsed as one.
    """
    return f"{prefix}{FALLBACK_MARKER}{millis}"
