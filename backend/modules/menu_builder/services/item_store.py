# backend/modules/menu_builder/services/item_store.py

"""
In-memory item collection backing the menu editor.

Items are the single source of truth; the category view is derived on
every read from the items plus a list of transient empty categories
that exist only in client memory until an item is placed in them.
Snapshots are scoped to the records (and fields) an operation touches
so that concurrent operations roll back independently.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from core.exceptions import MenuNotFoundError
from modules.menu_builder.schemas import ItemRef, MenuItem
from modules.menu_builder.services.position_allocator import renumber, sort_by_position

logger = logging.getLogger(__name__)

ItemKey = Union[str, ItemRef]


@dataclass
class SnapshotEntry:
    index: int
    item: MenuItem
    values: Dict[str, Any]
    extra: Optional[Dict[str, Any]] = None


@dataclass
class StoreSnapshot:
    """Touched slice of the store captured before a local apply."""

    entries: List[SnapshotEntry] = field(default_factory=list)
    categories: Tuple[str, ...] = ()
    declared_categories: List[str] = field(default_factory=list)
    fields: Optional[Tuple[str, ...]] = None


class MenuItemStore:
    """Ordered items plus the derived category view."""

    def __init__(
        self,
        items: Optional[Iterable[MenuItem]] = None,
        declared_categories: Optional[Iterable[str]] = None,
    ):
        self._items: List[MenuItem] = list(items or [])
        self._declared: List[str] = []
        for category in declared_categories or []:
            self.declare_category(category)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    @property
    def items(self) -> Tuple[MenuItem, ...]:
        return tuple(self._items)

    @property
    def declared_categories(self) -> List[str]:
        return list(self._declared)

    # Lookup

    def find(self, item_id: ItemKey) -> Optional[MenuItem]:
        key = str(item_id)
        for item in self._items:
            if item.id.value == key:
                return item
        return None

    def require(self, item_id: ItemKey) -> MenuItem:
        item = self.find(item_id)
        if item is None:
            raise MenuNotFoundError(
                "Menu item not found",
                error_code="MENU_ITEM_NOT_FOUND",
                details={"item_id": str(item_id)},
            )
        return item

    def contains(self, item: MenuItem) -> bool:
        return any(existing is item for existing in self._items)

    def index_of(self, item: MenuItem) -> int:
        for index, existing in enumerate(self._items):
            if existing is item:
                return index
        return -1

    # Derived category view

    @property
    def categories(self) -> List[str]:
        """Categories in first-appearance order, then transient empty ones."""
        seen: List[str] = []
        for item in self._items:
            if item.category not in seen:
                seen.append(item.category)
        for category in self._declared:
            if category not in seen:
                seen.append(category)
        return seen

    def has_category(self, name: str) -> bool:
        return name in self.categories

    def items_in(self, category: str) -> List[MenuItem]:
        return sort_by_position(item for item in self._items if item.category == category)

    def category_map(self) -> Dict[str, List[MenuItem]]:
        grouped: Dict[str, List[MenuItem]] = {name: [] for name in self.categories}
        for item in self._items:
            grouped[item.category].append(item)
        return {name: sort_by_position(members) for name, members in grouped.items()}

    def declare_category(self, name: str) -> None:
        if name not in self._declared:
            self._declared.append(name)

    def forget_category(self, name: str) -> None:
        if name in self._declared:
            self._declared.remove(name)

    def rename_declared(self, old: str, new: str) -> None:
        if old in self._declared:
            self._declared[self._declared.index(old)] = new

    # Mutation

    def insert(self, item: MenuItem, index: Optional[int] = None) -> None:
        if index is None or index >= len(self._items):
            self._items.append(item)
        else:
            self._items.insert(max(index, 0), item)

    def remove(self, item: MenuItem) -> int:
        index = self.index_of(item)
        if index < 0:
            raise MenuNotFoundError(
                "Menu item not found",
                error_code="MENU_ITEM_NOT_FOUND",
                details={"item_id": item.id.value},
            )
        del self._items[index]
        return index

    def replace(self, local: MenuItem, server: MenuItem) -> bool:
        """Swap the local record for the server's, matched by identity."""
        index = self.index_of(local)
        if index < 0:
            logger.debug(f"Item {local.id} no longer in store, skipping replace")
            return False
        self._items[index] = server
        return True

    def merge(self, local: MenuItem, server: MenuItem, fields: Sequence[str]) -> bool:
        """Copy the given server fields onto the local record in place."""
        if not self.contains(local):
            return False
        for name in fields:
            setattr(local, name, getattr(server, name))
        return True

    def replace_all(
        self, items: Iterable[MenuItem], keep_declared: bool = True
    ) -> None:
        self._items = list(items)
        if not keep_declared:
            self._declared = []
        else:
            # empty categories that now hold items are no longer transient
            used = {item.category for item in self._items}
            self._declared = [name for name in self._declared if name not in used]

    # Snapshots

    def snapshot(
        self,
        categories: Iterable[str] = (),
        items: Iterable[MenuItem] = (),
        fields: Optional[Sequence[str]] = None,
    ) -> StoreSnapshot:
        """Capture the records in ``categories`` plus ``items``.

        When ``fields`` is given only those attributes are restored on
        rollback, leaving concurrent edits to other fields untouched.
        """
        categories = list(categories)
        scope = set(categories)
        chosen: List[MenuItem] = []
        for item in self._items:
            if item.category in scope:
                chosen.append(item)
        for item in items:
            if not any(existing is item for existing in chosen):
                chosen.append(item)

        snapshot = StoreSnapshot(
            categories=tuple(dict.fromkeys(categories)),
            declared_categories=list(self._declared),
            fields=tuple(fields) if fields is not None else None,
        )
        for item in chosen:
            names = snapshot.fields or tuple(type(item).model_fields)
            copied = item.model_copy(deep=True)
            snapshot.entries.append(
                SnapshotEntry(
                    index=self.index_of(item),
                    item=item,
                    values={name: getattr(copied, name) for name in names},
                    extra=dict(copied.__pydantic_extra__ or {}) if snapshot.fields is None else None,
                )
            )
        return snapshot

    def restore(
        self,
        snapshot: StoreSnapshot,
        discard: Iterable[MenuItem] = (),
        reinsert: Iterable[MenuItem] = (),
    ) -> None:
        """Roll back to ``snapshot``.

        ``discard`` lists records this operation created and ``reinsert``
        the ones it removed. Any other captured record that is no longer in
        the store was removed by someone else and stays gone. Categories in
        the snapshot's scope are renumbered: restored records take their
        captured ranks and records the snapshot never saw follow them.
        """
        for created in discard:
            if self.contains(created):
                self.remove(created)

        removed_here = list(reinsert)
        restored: List[MenuItem] = []
        for entry in sorted(snapshot.entries, key=lambda e: e.index):
            if not self.contains(entry.item):
                if not any(entry.item is removed for removed in removed_here):
                    logger.debug(f"Item {entry.item.id} was removed meanwhile, not restoring it")
                    continue
                self.insert(entry.item, entry.index if entry.index >= 0 else None)
            for name, value in entry.values.items():
                setattr(entry.item, name, value)
            if entry.extra is not None and entry.item.__pydantic_extra__ is not None:
                entry.item.__pydantic_extra__.clear()
                entry.item.__pydantic_extra__.update(entry.extra)
            restored.append(entry.item)

        self._declared = list(snapshot.declared_categories)

        if snapshot.categories:
            affected = list(snapshot.categories)
            for item in restored:
                if item.category not in affected:
                    affected.append(item.category)
            for category in affected:
                self._settle_positions(category, restored)

    def _settle_positions(self, category: str, restored: Sequence[MenuItem]) -> None:
        members = [item for item in self._items if item.category == category]
        captured = [item for item in members if any(item is r for r in restored)]
        others = [item for item in members if not any(item is r for r in restored)]
        renumber(sort_by_position(captured) + sort_by_position(others))
