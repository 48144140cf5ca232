"""
Filter Engine: reduces a batch of orders to the ones a queue accepts.

Filters are OR-combined at the item level. For each (item, filter) pair the
filter votes `not matches` when suppress is set and `matches` otherwise; an
order survives when any pair votes true. A suppress filter therefore keeps
every order that has at least one item not containing its pattern.
"""

from typing import Iterable, Protocol, Sequence, TypeVar


class _Item(Protocol):
    name: str


class _Filter(Protocol):
    pattern: str
    suppress: bool


OrderT = TypeVar("OrderT")


def matches(item_name: str | None, pattern: str) -> bool:
    """Case-insensitive substring containment."""
    return pattern.lower() in (item_name or "").lower()


def filter_votes(item_name: str | None, f: _Filter) -> bool:
    """Effective inclusion of one filter for one item."""
    hit = matches(item_name, f.pattern)
    return not hit if f.suppress else hit


def order_passes(items: Iterable[_Item], filters: Sequence[_Filter]) -> bool:
    return any(filter_votes(item.name, f) for item in items for f in filters)


def filter_orders(orders: Sequence[OrderT], filters: Sequence[_Filter]) -> list[OrderT]:
    """
    Apply a queue's active filters to a batch.

    An empty filter list passes the batch through unchanged. Input order is
    preserved; round-robin depends on it.
    """
    if not filters:
        return list(orders)
    return [order for order in orders if order_passes(order.items, filters)]


def accepted_by_any(items: Iterable[_Item], filter_sets: Sequence[Sequence[_Filter]]) -> bool:
    """True when at least one queue (given by its active filters) would take the order."""
    items = list(items)
    return any(not filters or order_passes(items, filters) for filters in filter_sets)
