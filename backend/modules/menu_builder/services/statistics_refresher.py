# backend/modules/menu_builder/services/statistics_refresher.py

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from core.exceptions import MenuBuilderError
from core.memory_cache import LRUCache
from modules.menu_builder.services.menu_api_client import MenuApiClient

logger = logging.getLogger(__name__)


class StatisticsRefresher:
    """Fire-and-forget recomputation of aggregate menu statistics.

    Failures are logged and never surfaced to the user; the last good
    statistics stay in place.
    """

    def __init__(
        self,
        api: MenuApiClient,
        menu_id: str,
        cache: Optional[LRUCache] = None,
        enabled: bool = True,
    ):
        self.api = api
        self.menu_id = menu_id
        self.cache = cache
        self.enabled = enabled
        self.statistics: Optional[Dict[str, Any]] = None
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def cache_key(menu_id: str) -> str:
        return f"menu_{menu_id}_statistics"

    async def refresh(self) -> Optional[Dict[str, Any]]:
        try:
            statistics = await self.api.get_statistics(self.menu_id)
        except MenuBuilderError as e:
            logger.warning(f"Statistics refresh for menu {self.menu_id} failed: {e.message}")
            return None
        except Exception as e:
            logger.error(f"Unexpected statistics refresh error: {e}", exc_info=True)
            return None

        self.statistics = statistics
        if self.cache is not None:
            await self.cache.set(self.cache_key(self.menu_id), statistics)
        return statistics

    def schedule(self) -> Optional[asyncio.Task]:
        """Start a background refresh without awaiting it."""
        if not self.enabled:
            return None
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
