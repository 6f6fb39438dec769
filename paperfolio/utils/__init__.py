"""
Paperfolio Utilities Package
"""

from paperfolio.utils.helpers import (
    chunk_list,
    is_blank,
    money,
    normalize_symbol,
    round_decimal,
    to_decimal,
    unique_in_order,
    utc_now,
    utc_timestamp_ms,
)

__all__ = [
    "chunk_list",
    "is_blank",
    "money",
    "normalize_symbol",
    "round_decimal",
    "to_decimal",
    "unique_in_order",
    "utc_now",
    "utc_timestamp_ms",
]
