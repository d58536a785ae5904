"""Dense 1-based ordering helpers for floors and floor images."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, Sequence, TypeVar


T = TypeVar("T")

PRIORITY_FIELD = "priority"
ORDER_FIELD = "order"


def renumber(items: Iterable[T], field: str) -> tuple[T, ...]:
    """Return copies of ``items`` with ``field`` set to 1..n in input order."""
    return tuple(replace(item, **{field: index}) for index, item in enumerate(items, start=1))


def renumber_priorities(floors: Iterable[T]) -> tuple[T, ...]:
    return renumber(floors, PRIORITY_FIELD)


def renumber_orders(images: Iterable[T]) -> tuple[T, ...]:
    return renumber(images, ORDER_FIELD)


def sort_by_priority(floors: Iterable[T]) -> list[T]:
    return sorted(floors, key=lambda item: int(getattr(item, PRIORITY_FIELD)))


def sort_by_order(images: Iterable[T]) -> list[T]:
    return sorted(images, key=lambda item: int(getattr(item, ORDER_FIELD)))


def is_dense(values: Sequence[Any]) -> bool:
    """True when ``values`` is exactly {1..len(values)} with no duplicates."""
    try:
        numbers = [int(value) for value in values]
    except (TypeError, ValueError):
        return False
    return sorted(numbers) == list(range(1, len(numbers) + 1))
