from __future__ import annotations

from typing import Final

_CONTROL_CHARS: Final[frozenset[str]] = frozenset(
    chr(code) for code in range(0x00, 0x20) if chr(code) not in {"\t", "\n"}
)

# Leading characters spreadsheet applications evaluate as formulas.
_FORMULA_PREFIXES: Final[tuple[str, ...]] = ("=", "+", "-", "@", "\t", "\r")


def sanitize_log_message(value: str) -> str:
    """Normalise log messages by stripping control characters and CR sequences."""

    normalised = value.replace("\r\n", "\n").replace("\r", "\n")
    return "".join(ch for ch in normalised if ch not in _CONTROL_CHARS)


def sanitize_csv_cell(value: str | None) -> str:
    """Return a CSV-safe cell value that spreadsheets will not execute."""

    if not value:
        return ""
    if value.startswith(_FORMULA_PREFIXES):
        return f"'{value}"
    return value


__all__ = ["sanitize_log_message", "sanitize_csv_cell"]
