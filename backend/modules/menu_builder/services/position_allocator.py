# backend/modules/menu_builder/services/position_allocator.py

"""
Dense position ranks within a category.

Every category holds ranks 0..n-1 without gaps or duplicates. These
helpers mutate ``position`` (and ``category`` for cross-category moves)
in place on the items they are given and return the new ordering.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from modules.menu_builder.schemas import MenuItem


def sort_by_position(items: Iterable[MenuItem]) -> List[MenuItem]:
    # sorted() is stable, so ties keep store order
    return sorted(items, key=lambda item: item.position)


def renumber(items: Sequence[MenuItem]) -> List[MenuItem]:
    """Assign ranks 0..n-1 following the given order."""
    ordered = list(items)
    for index, item in enumerate(ordered):
        if item.position != index:
            item.position = index
    return ordered


def next_position(items: Iterable[MenuItem]) -> int:
    """Rank for a new item appended to a category: max + 1, or 0 when empty."""
    positions = [item.position for item in items]
    return max(positions) + 1 if positions else 0


def positions_are_dense(items: Iterable[MenuItem]) -> bool:
    positions = sorted(item.position for item in items)
    return positions == list(range(len(positions)))


def _index_of(items: Sequence[MenuItem], target: MenuItem) -> int:
    for index, item in enumerate(items):
        if item is target:
            return index
    raise ValueError("Item is not part of this category")


def reorder_within(
    items: Sequence[MenuItem], active: MenuItem, target: MenuItem
) -> List[MenuItem]:
    """Move ``active`` into ``target``'s slot (array-move semantics)."""
    ordered = sort_by_position(items)
    if active is target:
        return ordered

    old_index = _index_of(ordered, active)
    new_index = _index_of(ordered, target)
    moved = ordered.pop(old_index)
    ordered.insert(new_index, moved)
    return renumber(ordered)


def move_across(
    source: Sequence[MenuItem],
    destination: Sequence[MenuItem],
    item: MenuItem,
    destination_category: str,
    rank: Optional[int] = None,
) -> Tuple[List[MenuItem], List[MenuItem]]:
    """Move ``item`` out of ``source`` into ``destination`` at ``rank``.

    ``rank`` defaults to the end of the destination and is clamped to
    its bounds. Both categories are renumbered.
    """
    remaining = renumber([i for i in sort_by_position(source) if i is not item])

    target = [i for i in sort_by_position(destination) if i is not item]
    if rank is None or rank > len(target):
        rank = len(target)
    rank = max(rank, 0)
    target.insert(rank, item)
    item.category = destination_category
    return remaining, renumber(target)
