"""
CSV header to canonical field resolution.

Headers are compared case-insensitively after trimming and removing a
leading byte-order mark. There is no fuzzy matching.
"""

from typing import Iterable, Optional, Sequence

BYTE_ORDER_MARK = "\ufeff"


def normalize_header(header: str) -> str:
    """Comparable form of a header or alias."""
    return (header or "").lstrip(BYTE_ORDER_MARK).strip().lower()


def find_column(headers: Sequence[str], aliases: Iterable[str]) -> Optional[str]:
    """
    Find the header matching one of the aliases.

    Aliases are tried in order, so an earlier alias wins even when a later
    alias matches a header further left. The header is returned exactly as
    it appears in the file so it can be used to index the row.
    """
    normalized = [(normalize_header(header), header) for header in headers]
    for alias in aliases:
        wanted = normalize_header(alias)
        for candidate, original in normalized:
            if candidate == wanted:
                return original
    return None
