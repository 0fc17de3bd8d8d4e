"""Sort keys for sibling volumes and chapters.

Keys are arbitrary-precision decimals. New siblings are only ever appended,
so the next key is the current maximum plus one; reordering renumbers the
siblings explicitly instead of bisecting gaps.
"""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, TypeVar, Union

KeyLike = Union[Decimal, int, str]
T = TypeVar("T")

FIRST_KEY = Decimal(1)
STEP = Decimal(1)


def _as_decimal(value: KeyLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Sort keys must not be floats.")
    return Decimal(str(value))


def next_sort_key(existing_max_key: Optional[KeyLike]) -> Decimal:
    """Return the key for a sibling appended after ``existing_max_key``."""

    if existing_max_key is None:
        return FIRST_KEY
    return _as_decimal(existing_max_key) + STEP


def renumbered(items: Sequence[T]) -> List[Tuple[T, Decimal]]:
    """Pair ``items`` with contiguous keys 1..n in the given order."""

    return [(item, FIRST_KEY + STEP * index) for index, item in enumerate(items)]


__all__ = ["FIRST_KEY", "next_sort_key", "renumbered"]
