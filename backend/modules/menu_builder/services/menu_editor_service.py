# backend/modules/menu_builder/services/menu_editor_service.py

"""
Menu editor service.

Facade the UI drives: validates local preconditions, then runs every
mutation through the optimistic engine against the item store. Also
owns loading, the lock state machine, the pending price review and
statistics refresh for one menu.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from core.config import Settings, get_settings
from core.exceptions import (
    CatalogEntryNotFoundError,
    CategoryExistsError,
    ItemPendingError,
    LastCategoryError,
    MenuBuilderError,
    MenuLockedError,
    MenuValidationError,
    PartialBatchError,
    describe_failure,
)
from core.memory_cache import LRUCache
from modules.menu_builder.schemas import (
    UNCATEGORIZED,
    CatalogEntry,
    ChangeSet,
    DishSummary,
    EntryType,
    ItemRef,
    Menu,
    MenuItem,
    RecipeSummary,
)
from modules.menu_builder.services import position_allocator
from modules.menu_builder.services.change_reconciler import ChangeReconciler, ChangeReview
from modules.menu_builder.services.item_store import MenuItemStore
from modules.menu_builder.services.menu_api_client import MenuApiClient
from modules.menu_builder.services.menu_loader import MenuLoader
from modules.menu_builder.services.menu_lock_service import MenuLockService
from modules.menu_builder.services.notification_service import NotificationService
from modules.menu_builder.services.optimistic_engine import (
    MutationOutcome,
    OptimisticMutationEngine,
)
from modules.menu_builder.services.statistics_refresher import StatisticsRefresher
from modules.menu_builder.services.sync_fence import SyncFence
from modules.menu_builder.utils.pricing_utils import normalize_actual_price

logger = logging.getLogger(__name__)

ItemKey = Union[str, ItemRef]

CATEGORY_FIELDS = ("category", "position")


@dataclass
class EditorView:
    """Read model handed to the UI after every change"""

    menu: Menu
    items: List[MenuItem]
    categories: Dict[str, List[MenuItem]]
    statistics: Optional[Dict[str, Any]]
    pending_operations: Dict[str, int] = field(default_factory=dict)
    pending_changes: Optional[ChangeSet] = None

    @property
    def is_locked(self) -> bool:
        return self.menu.is_locked

    @property
    def read_only(self) -> bool:
        return self.menu.is_locked


class MenuEditorService:
    """Optimistic editing of one menu"""

    def __init__(
        self,
        menu: Menu,
        api: MenuApiClient,
        *,
        identity: str = "unknown",
        notifications: Optional[NotificationService] = None,
        cache: Optional[LRUCache] = None,
        on_reauth_required: Optional[Callable[[], Any]] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or get_settings()
        self.menu = menu
        self.api = api
        self.notifications = notifications or NotificationService()
        self.cache = cache or LRUCache(
            max_size=self.config.cache_max_size, ttl_seconds=self.config.cache_ttl_seconds
        )

        self.store = MenuItemStore()
        self.dishes: List[DishSummary] = []
        self.recipes: List[RecipeSummary] = []
        self.catalog_task: Optional[asyncio.Task] = None

        self.fence = SyncFence(self.config.lock_fence_window_seconds)
        self.statistics = StatisticsRefresher(
            api, menu.id, self.cache, enabled=self.config.statistics_refresh_enabled
        )
        self.engine = OptimisticMutationEngine(
            self.notifications,
            fence=self.fence,
            on_settled=self._on_settled,
            on_reauth_required=on_reauth_required,
            reauth_delay=self.config.reauth_redirect_delay_seconds,
        )
        self.loader = MenuLoader(api, self.cache, timeout=self.config.menu_load_timeout_seconds)
        self.reconciler = ChangeReconciler(self.config.price_drift_tolerance)
        self.review = ChangeReview(
            api, self.notifications, on_prices_recalculated=self._reload_after_recalculation
        )
        self.lock_service = MenuLockService(
            menu,
            api,
            self.engine,
            self.fence,
            self.store,
            self.reconciler,
            self.review,
            self.notifications,
            identity=identity,
        )

    # Loading

    async def open(self) -> EditorView:
        """Load the menu. Locked menus await items only; the catalog follows in the background."""
        cached = await self.loader.cached(self.menu.id)
        if cached is not None:
            self._apply_loaded(cached.menu, cached.items)
            self.dishes, self.recipes = cached.dishes, cached.recipes
            self.statistics.statistics = cached.statistics

        try:
            if self.menu.is_locked:
                menu, items = await self.loader.load_items(self.menu.id)
            else:
                data = await self.loader.load(self.menu.id)
        except MenuBuilderError as e:
            self.notifications.error(describe_failure("load menu", e), operation="load")
            raise

        if self.menu.is_locked:
            self._apply_loaded(menu, items)
            self.lock_service.restore_baseline_if_missing()
            self.catalog_task = asyncio.create_task(self._load_deferred())
        else:
            self._apply_loaded(data.menu, data.items)
            self.dishes, self.recipes = data.dishes, data.recipes
            self.statistics.statistics = data.statistics
        return self.view()

    async def _load_deferred(self) -> None:
        self.dishes, self.recipes = await self.loader.load_catalog()
        await self.statistics.refresh()

    async def reload(self) -> bool:
        """Re-fetch items from the server, unless a local transition just happened."""
        menu, items = await self.loader.load_items(self.menu.id)
        return self.apply_external_refresh(menu, items)

    async def _reload_after_recalculation(self) -> None:
        menu, items = await self.loader.load_items(self.menu.id)
        self._apply_loaded(menu, items)
        await self.loader.invalidate(self.menu.id)
        self.statistics.schedule()

    def apply_external_refresh(self, menu: Menu, items: Sequence[MenuItem]) -> bool:
        if self.engine.is_pending() or not self.fence.allows_refresh():
            logger.debug(f"Ignoring external refresh of menu {self.menu.id}")
            return False
        self._apply_loaded(menu, items)
        return True

    def _apply_loaded(self, menu: Menu, items: Sequence[MenuItem]) -> None:
        self.menu.apply_lock_status(menu.lock_status)
        self.menu.menu_name = menu.menu_name
        self.menu.description = menu.description
        self.menu.updated_at = menu.updated_at
        self.store.replace_all(items)
        if len(self.store.categories) == 0:
            self.store.declare_category(UNCATEGORIZED)

    async def close(self) -> None:
        self.engine.cancel_reauth()
        if self.catalog_task is not None and not self.catalog_task.done():
            self.catalog_task.cancel()
        await self.statistics.drain()

    def view(self) -> EditorView:
        return EditorView(
            menu=self.menu,
            items=list(self.store.items),
            categories=self.store.category_map(),
            statistics=self.statistics.statistics,
            pending_operations=self.engine.pending_operations,
            pending_changes=self.review.pending,
        )

    @property
    def categories(self) -> List[str]:
        return self.store.categories

    def _on_settled(self, operation: str, succeeded: bool) -> None:
        self.statistics.schedule()

    # Preconditions

    def _ensure_editable(self, operation: str) -> None:
        if self.lock_service.is_locked:
            raise MenuLockedError(self.menu.id, operation)

    def _confirmed_item(self, item_id: ItemKey) -> MenuItem:
        item = self.store.require(item_id)
        if item.is_pending:
            raise ItemPendingError(item.id.value)
        return item

    def _ensure_no_pending(self, category: str) -> None:
        for item in self.store.items_in(category):
            if item.is_pending:
                raise ItemPendingError(item.id.value)

    @staticmethod
    def _clean_category_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise MenuValidationError("Category name cannot be empty")
        return cleaned

    def resolve_catalog_entry(self, entry_type: Union[EntryType, str], entry_id: Any) -> CatalogEntry:
        entry_type = EntryType(entry_type)
        key = str(entry_id)
        if entry_type == EntryType.DISH:
            for dish in self.dishes:
                if dish.id == key:
                    return CatalogEntry.from_dish(dish)
        else:
            for recipe in self.recipes:
                if recipe.id == key:
                    return CatalogEntry.from_recipe(recipe)
        raise CatalogEntryNotFoundError(entry_type.value, key)

    # Item operations

    async def add_item(
        self,
        entry_type: Union[EntryType, str],
        entry_id: Any,
        category: str = UNCATEGORIZED,
    ) -> MutationOutcome[MenuItem]:
        self._ensure_editable("add_item")
        category = self._clean_category_name(category)
        entry = self.resolve_catalog_entry(entry_type, entry_id)

        placeholder = MenuItem(
            id=ItemRef.pending(),
            menu_id=self.menu.id,
            dish_id=entry.id if entry.entry_type == EntryType.DISH else None,
            recipe_id=entry.id if entry.entry_type == EntryType.RECIPE else None,
            category=category,
            position=position_allocator.next_position(self.store.items_in(category)),
            name=entry.name,
            description=entry.description,
            recommended_selling_price=entry.price,
        )

        def apply() -> MenuItem:
            self.store.insert(placeholder)
            return placeholder

        def reconcile(local: MenuItem, server: MenuItem) -> None:
            self.store.replace(local, server)
            self.store.forget_category(server.category)
            # the server rank was chosen while other edits may have been in flight
            position_allocator.renumber(self.store.items_in(server.category))

        outcome = await self.engine.execute(
            "add_item",
            snapshot=lambda: self.store.snapshot(),
            restore=lambda state: self.store.restore(state, discard=[placeholder]),
            apply=apply,
            commit=lambda local: self.api.create_item(
                self.menu.id,
                category=local.category,
                position=local.position,
                dish_id=local.dish_id,
                recipe_id=local.recipe_id,
            ),
            reconcile=reconcile,
            action=f'add "{entry.name}" to menu',
        )
        if outcome.succeeded:
            self.notifications.success(f'"{entry.name}" added to {category}', operation="add_item")
        return outcome

    async def remove_item(self, item_id: ItemKey) -> MutationOutcome[None]:
        self._ensure_editable("remove_item")
        item = self._confirmed_item(item_id)
        category = item.category

        def apply() -> MenuItem:
            self.store.remove(item)
            position_allocator.renumber(self.store.items_in(category))
            if not self.store.items_in(category):
                self.store.declare_category(category)
            return item

        outcome = await self.engine.execute(
            "remove_item",
            snapshot=lambda: self.store.snapshot(categories=[category], fields=CATEGORY_FIELDS),
            restore=lambda state: self.store.restore(state, reinsert=[item]),
            apply=apply,
            commit=lambda removed: self.api.delete_item(self.menu.id, removed.id.value),
            action="remove item",
        )
        if outcome.succeeded:
            self.notifications.success(f'"{item.display_name}" removed from menu', operation="remove_item")
        return outcome

    async def reorder_item(self, active_id: ItemKey, over_id: ItemKey) -> MutationOutcome[None]:
        """Drop ``active`` onto ``over``; a different category means a cross-category move."""
        self._ensure_editable("reorder_item")
        active = self._confirmed_item(active_id)
        over = self._confirmed_item(over_id)
        if active is over:
            return MutationOutcome.skipped("reorder_item")
        if active.category != over.category:
            return await self.move_item_to_category(active.id, over.category, over_id=over.id)

        category = active.category

        def apply() -> List[str]:
            position_allocator.reorder_within(self.store.items_in(category), active, over)
            return [category]

        return await self.engine.execute(
            "reorder_item",
            snapshot=lambda: self.store.snapshot(categories=[category], fields=CATEGORY_FIELDS),
            restore=self.store.restore,
            apply=apply,
            commit=self._commit_order,
            action="reorder items",
        )

    async def move_item_up(self, item_id: ItemKey) -> MutationOutcome[None]:
        return await self._move_by(item_id, -1)

    async def move_item_down(self, item_id: ItemKey) -> MutationOutcome[None]:
        return await self._move_by(item_id, 1)

    async def _move_by(self, item_id: ItemKey, step: int) -> MutationOutcome[None]:
        self._ensure_editable("reorder_item")
        item = self._confirmed_item(item_id)
        siblings = self.store.items_in(item.category)
        index = next(i for i, sibling in enumerate(siblings) if sibling is item)
        target = index + step
        if target < 0 or target >= len(siblings):
            return MutationOutcome.skipped("reorder_item")
        return await self.reorder_item(item.id, siblings[target].id)

    async def move_item_to_category(
        self,
        item_id: ItemKey,
        target_category: str,
        over_id: Optional[ItemKey] = None,
    ) -> MutationOutcome[None]:
        """Move an item to another category, at ``over_id``'s rank or at the end."""
        self._ensure_editable("move_item")
        item = self._confirmed_item(item_id)
        target_category = self._clean_category_name(target_category)
        source_category = item.category
        if target_category == source_category:
            return MutationOutcome.skipped("move_item")

        rank = None
        if over_id is not None:
            over = self.store.require(over_id)
            if over.category == target_category:
                rank = over.position

        def apply() -> List[str]:
            position_allocator.move_across(
                self.store.items_in(source_category),
                self.store.items_in(target_category),
                item,
                target_category,
                rank=rank,
            )
            self.store.forget_category(target_category)
            if not self.store.items_in(source_category):
                self.store.declare_category(source_category)
            return [source_category, target_category]

        return await self.engine.execute(
            "move_item",
            snapshot=lambda: self.store.snapshot(
                categories=[source_category, target_category], fields=CATEGORY_FIELDS
            ),
            restore=self.store.restore,
            apply=apply,
            commit=self._commit_order,
            action="move item",
        )

    async def _commit_order(self, categories: List[str]) -> None:
        payload = []
        for category in categories:
            for item in self.store.items_in(category):
                if item.is_pending:
                    continue
                payload.append(
                    {"id": item.id.value, "category": item.category, "position": item.position}
                )
        await self.api.reorder_items(self.menu.id, payload)

    async def update_price(self, item_id: ItemKey, price: Optional[float]) -> MutationOutcome[Optional[MenuItem]]:
        """Set the actual selling price; a price matching the recommended one is stored as null."""
        self._ensure_editable("update_price")
        item = self._confirmed_item(item_id)
        value = normalize_actual_price(
            price, item.recommended_selling_price, self.config.price_match_tolerance
        )
        return await self._update_field(item, "actual_selling_price", value, "update price")

    async def update_region(self, item_id: ItemKey, region: Optional[str]) -> MutationOutcome[Optional[MenuItem]]:
        self._ensure_editable("update_region")
        item = self._confirmed_item(item_id)
        value = (region or "").strip() or None
        return await self._update_field(item, "region", value, "update region")

    async def _update_field(
        self, item: MenuItem, name: str, value: Any, action: str
    ) -> MutationOutcome[Optional[MenuItem]]:
        def apply() -> MenuItem:
            setattr(item, name, value)
            return item

        def reconcile(local: MenuItem, server: Optional[MenuItem]) -> None:
            if server is not None:
                fields = [name]
                if name == "actual_selling_price":
                    fields.append("recommended_selling_price")
                self.store.merge(local, server, fields)

        return await self.engine.execute(
            f"update_{name}",
            snapshot=lambda: self.store.snapshot(items=[item], fields=(name,)),
            restore=self.store.restore,
            apply=apply,
            commit=lambda local: self.api.update_item(self.menu.id, local.id.value, {name: value}),
            reconcile=reconcile,
            action=action,
        )

    # Category operations

    def add_category(self, name: str) -> str:
        """Create an empty category in client memory only."""
        self._ensure_editable("add_category")
        name = self._clean_category_name(name)
        if self.store.has_category(name):
            raise CategoryExistsError(name)
        self.store.declare_category(name)
        return name

    async def rename_category(self, old_name: str, new_name: str) -> MutationOutcome[None]:
        """Rename by migrating every item; all-or-nothing across the per-item requests."""
        self._ensure_editable("rename_category")
        new_name = self._clean_category_name(new_name)
        if new_name == old_name:
            return MutationOutcome.skipped("rename_category")
        if not self.store.has_category(old_name):
            raise MenuValidationError(f'Category "{old_name}" does not exist')
        if self.store.has_category(new_name):
            raise CategoryExistsError(new_name)
        self._ensure_no_pending(old_name)

        members = self.store.items_in(old_name)
        previous = self._placement_of(members)

        def apply() -> List[MenuItem]:
            for member in members:
                member.category = new_name
            self.store.rename_declared(old_name, new_name)
            return members

        return await self.engine.execute(
            "rename_category",
            snapshot=lambda: self.store.snapshot(categories=[old_name], fields=CATEGORY_FIELDS),
            restore=self.store.restore,
            apply=apply,
            commit=lambda moved: self._migrate(moved, previous, "rename_category"),
            action="rename category",
        )

    async def remove_category(self, name: str) -> MutationOutcome[None]:
        """Remove a category, moving its items to Uncategorized."""
        self._ensure_editable("remove_category")
        if not self.store.has_category(name):
            raise MenuValidationError(f'Category "{name}" does not exist')
        if len(self.store.categories) <= 1:
            raise LastCategoryError(name)

        members = self.store.items_in(name)
        if not members:
            self.store.forget_category(name)
            return MutationOutcome.skipped("remove_category")
        if name == UNCATEGORIZED:
            raise MenuValidationError(
                f"Cannot remove {UNCATEGORIZED} while it still holds items"
            )
        self._ensure_no_pending(name)
        previous = self._placement_of(members)

        def apply() -> List[MenuItem]:
            for member in members:
                position_allocator.move_across(
                    self.store.items_in(name),
                    self.store.items_in(UNCATEGORIZED),
                    member,
                    UNCATEGORIZED,
                )
            self.store.forget_category(name)
            self.store.forget_category(UNCATEGORIZED)
            return members

        return await self.engine.execute(
            "remove_category",
            snapshot=lambda: self.store.snapshot(
                categories=[name, UNCATEGORIZED], fields=CATEGORY_FIELDS
            ),
            restore=self.store.restore,
            apply=apply,
            commit=lambda moved: self._migrate(moved, previous, "remove_category"),
            action="remove category",
        )

    @staticmethod
    def _placement_of(members: List[MenuItem]) -> Dict[str, Dict[str, Any]]:
        return {
            member.id.value: {"category": member.category, "position": member.position}
            for member in members
        }

    async def _migrate(
        self,
        members: List[MenuItem],
        previous: Dict[str, Dict[str, Any]],
        operation: str,
    ) -> None:
        """Issue one PUT per item; on any failure undo the ones that succeeded."""
        failures: List[Dict[str, Any]] = []
        succeeded: List[MenuItem] = []
        for member in members:
            try:
                await self.api.update_item(
                    self.menu.id,
                    member.id.value,
                    {"category": member.category, "position": member.position},
                )
                succeeded.append(member)
            except MenuBuilderError as e:
                failures.append({"item_id": member.id.value, "error": e.message})

        if not failures:
            return

        logger.error(
            f"{operation} on menu {self.menu.id}: {len(failures)} of {len(members)} item updates failed"
        )
        await self._compensate(succeeded, previous, operation)
        raise PartialBatchError(operation, failures, len(members))

    async def _compensate(
        self,
        moved: List[MenuItem],
        previous: Dict[str, Dict[str, Any]],
        operation: str,
    ) -> None:
        for member in moved:
            try:
                await self.api.update_item(self.menu.id, member.id.value, previous[member.id.value])
            except MenuBuilderError as e:
                logger.error(
                    f"Could not revert item {member.id} after failed {operation}: {e.message}"
                )

    # Lock operations

    async def lock(self) -> MutationOutcome:
        return await self.lock_service.lock()

    async def unlock(self) -> MutationOutcome:
        return await self.lock_service.unlock()

    async def apply_price_changes(self) -> bool:
        return await self.review.apply()

    async def dismiss_price_changes(self) -> bool:
        return await self.review.dismiss()
