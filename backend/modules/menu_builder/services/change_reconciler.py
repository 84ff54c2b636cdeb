# backend/modules/menu_builder/services/change_reconciler.py

"""
Price reconciliation between lock and unlock.

Locking freezes the recommended price of every item as a baseline.
After a successful unlock the baseline is compared with the freshly
recalculated prices; drifted items become ``ChangeRecord`` entries
that the user either applies (recalculate prices on the server) or
dismisses. Either way the tracked changes are marked handled.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from core.config import settings
from core.exceptions import MenuBuilderError, describe_failure
from modules.menu_builder.schemas import (
    ChangeRecord,
    ChangeSet,
    LockResponse,
    MenuItem,
)
from modules.menu_builder.services.menu_api_client import MenuApiClient
from modules.menu_builder.services.notification_service import NotificationService
from modules.menu_builder.utils.pricing_utils import has_drifted, price_delta

logger = logging.getLogger(__name__)


@dataclass
class PriceBaseline:
    """Recommended prices frozen at lock time, keyed by confirmed item id"""

    menu_id: str
    prices: Dict[str, Optional[float]] = field(default_factory=dict)
    names: Dict[str, Optional[str]] = field(default_factory=dict)
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def capture(cls, menu_id: str, items: Iterable[MenuItem]) -> "PriceBaseline":
        baseline = cls(menu_id=menu_id)
        for item in items:
            if item.is_pending:
                continue
            baseline.prices[item.id.value] = item.recommended_selling_price
            baseline.names[item.id.value] = item.name
        return baseline


class ChangeReconciler:
    """Holds lock-time baselines and diffs them against current prices"""

    def __init__(self, tolerance: Optional[float] = None):
        self.tolerance = settings.price_drift_tolerance if tolerance is None else tolerance
        self._baselines: Dict[str, PriceBaseline] = {}

    def capture_baseline(self, menu_id: str, items: Iterable[MenuItem]) -> PriceBaseline:
        baseline = PriceBaseline.capture(menu_id, items)
        self._baselines[menu_id] = baseline
        logger.debug(f"Captured price baseline for {len(baseline.prices)} items of menu {menu_id}")
        return baseline

    def baseline_for(self, menu_id: str) -> Optional[PriceBaseline]:
        return self._baselines.get(menu_id)

    def discard_baseline(self, menu_id: str) -> Optional[PriceBaseline]:
        return self._baselines.pop(menu_id, None)

    def restore_baseline(self, baseline: Optional[PriceBaseline]) -> None:
        if baseline is not None:
            self._baselines[baseline.menu_id] = baseline

    def diff(
        self, baseline: PriceBaseline, current_prices: Mapping[str, Optional[float]]
    ) -> List[ChangeRecord]:
        records = []
        for item_id, previous in baseline.prices.items():
            if item_id not in current_prices:
                # removed while locked (should not happen) or not reported
                continue
            current = current_prices[item_id]
            if previous is None or current is None:
                continue
            if has_drifted(previous, current, self.tolerance):
                records.append(
                    ChangeRecord(
                        item_id=item_id,
                        item_name=baseline.names.get(item_id),
                        previous_price=previous,
                        new_price=current,
                        delta=price_delta(previous, current),
                    )
                )
        return records

    def reconcile(self, menu_id: str, response: LockResponse) -> ChangeSet:
        """Build the change set for a completed unlock and drop the baseline."""
        baseline = self.discard_baseline(menu_id)
        records: List[ChangeRecord] = []
        if baseline is None:
            logger.info(f"No price baseline for menu {menu_id}, skipping price diff")
        else:
            records = self.diff(baseline, response.current_prices)

        change_set = ChangeSet(
            menu_id=menu_id, records=records, tracked_changes=response.changes
        )
        logger.info(f"Menu {menu_id} unlocked: {change_set.summary()}")
        return change_set


class ChangeReview:
    """Pending change set awaiting the user's apply or dismiss decision.

    Hiding the review does not discard it; only a successful apply or
    dismiss clears the pending set.
    """

    def __init__(
        self,
        api: MenuApiClient,
        notifications: NotificationService,
        on_prices_recalculated: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.api = api
        self.notifications = notifications
        self.on_prices_recalculated = on_prices_recalculated
        self.pending: Optional[ChangeSet] = None
        self.visible = False
        self.busy = False

    @property
    def is_open(self) -> bool:
        return self.pending is not None and self.visible

    def open(self, change_set: ChangeSet) -> None:
        self.pending = change_set
        self.visible = True

    def hide(self) -> None:
        self.visible = False

    def show(self) -> None:
        if self.pending is not None:
            self.visible = True

    async def apply(self) -> bool:
        """Recalculate prices on the server, then mark changes handled."""
        if self.pending is None:
            return False
        menu_id = self.pending.menu_id

        self.busy = True
        try:
            await self.api.recalculate_prices(menu_id)
            await self.api.mark_changes_handled(menu_id)
        except MenuBuilderError as e:
            logger.error(f"Applying price changes for menu {menu_id} failed: {e.message}")
            self.notifications.error(describe_failure("update prices", e), operation="apply_changes")
            return False
        finally:
            self.busy = False

        self._clear()
        self.notifications.success("Prices recalculated successfully", operation="apply_changes")
        if self.on_prices_recalculated is not None:
            try:
                await self.on_prices_recalculated()
            except MenuBuilderError as e:
                logger.warning(f"Reload after price recalculation failed: {e.message}")
        return True

    async def dismiss(self) -> bool:
        """Keep current prices; only mark the changes handled."""
        if self.pending is None:
            return False
        menu_id = self.pending.menu_id

        self.busy = True
        try:
            await self.api.mark_changes_handled(menu_id)
        except MenuBuilderError as e:
            logger.error(f"Dismissing changes for menu {menu_id} failed: {e.message}")
            self.notifications.error(describe_failure("dismiss changes", e), operation="dismiss_changes")
            return False
        finally:
            self.busy = False

        self._clear()
        return True

    def _clear(self) -> None:
        self.pending = None
        self.visible = False
