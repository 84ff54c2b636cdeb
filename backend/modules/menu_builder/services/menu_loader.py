# backend/modules/menu_builder/services/menu_loader.py

"""
Loading of menu data for the editor.

A full load fetches the menu with its items, the dish and recipe
catalogs and the statistics concurrently under one blanket timeout.
Locked menus are read-only, so only the items are awaited and the
catalog is fetched afterwards. Results go through the read-through
cache so a reopened menu renders from memory first.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.exceptions import MenuBuilderError, MenuLoadTimeoutError
from core.memory_cache import LRUCache
from modules.menu_builder.schemas import DishSummary, Menu, MenuItem, RecipeSummary
from modules.menu_builder.services.menu_api_client import MenuApiClient

logger = logging.getLogger(__name__)


@dataclass
class MenuData:
    menu: Menu
    items: List[MenuItem]
    dishes: List[DishSummary] = field(default_factory=list)
    recipes: List[RecipeSummary] = field(default_factory=list)
    statistics: Optional[Dict[str, Any]] = None

    def copy(self) -> "MenuData":
        """Detached copy; the editor mutates the records it is given in place."""
        return MenuData(
            menu=self.menu.model_copy(deep=True),
            items=[item.model_copy(deep=True) for item in self.items],
            dishes=list(self.dishes),
            recipes=list(self.recipes),
            statistics=dict(self.statistics) if self.statistics is not None else None,
        )


class MenuLoader:
    """Fetches and caches everything the editor needs for one menu"""

    DISHES_KEY = "menu_builder_dishes"
    RECIPES_KEY = "menu_builder_recipes"

    def __init__(
        self,
        api: MenuApiClient,
        cache: Optional[LRUCache] = None,
        timeout: Optional[float] = None,
    ):
        self.api = api
        self.cache = cache
        self.timeout = settings.menu_load_timeout_seconds if timeout is None else timeout

    @staticmethod
    def menu_key(menu_id: str) -> str:
        return f"menu_{menu_id}_data"

    async def cached(self, menu_id: str) -> Optional[MenuData]:
        """Last loaded data for instant display, if any."""
        if self.cache is None:
            return None
        data = await self.cache.get(self.menu_key(menu_id))
        return data.copy() if data is not None else None

    async def load(self, menu_id: str) -> MenuData:
        """Full concurrent load; raises MenuLoadTimeoutError past the timeout."""
        try:
            results = await asyncio.wait_for(
                asyncio.gather(
                    self.api.get_menu(menu_id),
                    self.api.list_dishes(),
                    self.api.list_recipes(),
                    self.api.get_statistics(menu_id),
                    return_exceptions=True,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Loading menu {menu_id} timed out after {self.timeout}s")
            raise MenuLoadTimeoutError(self.timeout)

        menu_result, dishes, recipes, statistics = results
        if isinstance(menu_result, BaseException):
            raise menu_result

        menu, items = menu_result
        data = MenuData(
            menu=menu,
            items=items,
            dishes=self._optional(dishes, "dishes", []),
            recipes=self._optional(recipes, "recipes", []),
            statistics=self._optional(statistics, "statistics", None),
        )
        await self._store(menu_id, data)
        logger.info(f"Loaded menu {menu_id} with {len(items)} items")
        return data

    async def load_items(self, menu_id: str) -> Tuple[Menu, List[MenuItem]]:
        """Menu and items only, for the locked fast path."""
        try:
            return await asyncio.wait_for(self.api.get_menu(menu_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Loading menu {menu_id} timed out after {self.timeout}s")
            raise MenuLoadTimeoutError(self.timeout)

    async def load_catalog(self) -> Tuple[List[DishSummary], List[RecipeSummary]]:
        dishes, recipes = await asyncio.gather(
            self._cached_or_fetch(self.DISHES_KEY, self.api.list_dishes),
            self._cached_or_fetch(self.RECIPES_KEY, self.api.list_recipes),
            return_exceptions=True,
        )
        return (
            self._optional(dishes, "dishes", []),
            self._optional(recipes, "recipes", []),
        )

    async def invalidate(self, menu_id: str) -> None:
        if self.cache is not None:
            await self.cache.delete(self.menu_key(menu_id))

    async def _cached_or_fetch(self, key: str, fetch):
        if self.cache is None:
            return await fetch()
        return await self.cache.get_or_load(key, fetch)

    async def _store(self, menu_id: str, data: MenuData) -> None:
        if self.cache is None:
            return
        await self.cache.set(self.menu_key(menu_id), data.copy())
        if data.dishes:
            await self.cache.set(self.DISHES_KEY, data.dishes)
        if data.recipes:
            await self.cache.set(self.RECIPES_KEY, data.recipes)

    @staticmethod
    def _optional(result: Any, what: str, default: Any) -> Any:
        # catalog and statistics failures degrade to empty, the menu itself must load
        if isinstance(result, MenuBuilderError):
            logger.warning(f"Could not load {what}: {result.message}")
            return default
        if isinstance(result, BaseException):
            logger.error(f"Unexpected error loading {what}: {result}", exc_info=result)
            return default
        return result
