"""
Paperfolio Utility Helpers
Datetime, decimal and symbol helpers shared by services and routers.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")


# ============================================================================
# DateTime Helpers
# ============================================================================

def utc_now() -> datetime:
    """
    Get current UTC datetime as a naive value.

    Columns are stored without timezone, so every timestamp written or
    compared by the application goes through this helper.

    Returns:
        datetime: Current UTC datetime without tzinfo.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_timestamp_ms() -> int:
    """
    Get current UTC timestamp in milliseconds.

    Returns:
        int: Current UTC timestamp in milliseconds.
    """
    return int(datetime.now(timezone.utc).timestamp() * 1000)


# ============================================================================
# Decimal Helpers
# ============================================================================

def to_decimal(value: Union[str, int, float, Decimal]) -> Decimal:
    """Convert a number to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_decimal(value: Union[str, int, float, Decimal], precision: int = 2) -> Decimal:
    """
    Round a value to specified decimal precision using HALF_UP.

    Args:
        value: Value to round.
        precision: Number of decimal places.

    Returns:
        Decimal: Rounded decimal value.
    """
    return to_decimal(value).quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def money(value: Union[str, int, float, Decimal]) -> Decimal:
    """Round to cents."""
    return round_decimal(value, 2)


# ============================================================================
# Collection / Symbol Helpers
# ============================================================================

def chunk_list(input_list: List[T], chunk_size: int) -> List[List[T]]:
    """
    Split list into chunks of specified size.

    Args:
        input_list: List to split.
        chunk_size: Size of each chunk.

    Returns:
        List[List]: List of chunks.
    """
    return [input_list[i:i + chunk_size] for i in range(0, len(input_list), chunk_size)]


def normalize_symbol(symbol: Optional[str]) -> Optional[str]:
    """Trim and upper-case a ticker; None stays None."""
    if symbol is None:
        return None
    return symbol.strip().upper()


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def unique_in_order(items: Iterable[T]) -> List[T]:
    """Drop duplicates, keeping the first occurrence of each item."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


__all__ = [
    "utc_now",
    "utc_timestamp_ms",
    "to_decimal",
    "round_decimal",
    "money",
    "chunk_list",
    "normalize_symbol",
    "is_blank",
    "unique_in_order",
]
