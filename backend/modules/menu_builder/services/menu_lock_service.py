# backend/modules/menu_builder/services/menu_lock_service.py

"""
Lock state machine for a menu.

UNLOCKED -> LOCKED via lock(), LOCKED -> UNLOCKED via unlock(); both are
optimistic mutations. Locking freezes the price baseline; a successful
unlock hands the response to the change reconciler.
"""

import logging
from enum import Enum
from typing import Optional

from core.exceptions import InvalidLockTransitionError
from modules.menu_builder.schemas import LockResponse, LockStatus, Menu
from modules.menu_builder.services.change_reconciler import ChangeReconciler, ChangeReview
from modules.menu_builder.services.item_store import MenuItemStore
from modules.menu_builder.services.menu_api_client import MenuApiClient
from modules.menu_builder.services.notification_service import NotificationService
from modules.menu_builder.services.optimistic_engine import (
    MutationOutcome,
    OptimisticMutationEngine,
)
from modules.menu_builder.services.sync_fence import SyncFence

logger = logging.getLogger(__name__)


class LockState(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class MenuLockService:
    """Optimistic lock/unlock transitions for one menu"""

    def __init__(
        self,
        menu: Menu,
        api: MenuApiClient,
        engine: OptimisticMutationEngine,
        fence: SyncFence,
        store: MenuItemStore,
        reconciler: ChangeReconciler,
        review: ChangeReview,
        notifications: NotificationService,
        identity: str = "unknown",
    ):
        self.menu = menu
        self.api = api
        self.engine = engine
        self.fence = fence
        self.store = store
        self.reconciler = reconciler
        self.review = review
        self.notifications = notifications
        self.identity = identity

    @property
    def state(self) -> LockState:
        return LockState.LOCKED if self.menu.is_locked else LockState.UNLOCKED

    @property
    def is_locked(self) -> bool:
        return self.state == LockState.LOCKED

    async def lock(self) -> MutationOutcome[LockResponse]:
        if self.is_locked:
            raise InvalidLockTransitionError(self.state.value, LockState.LOCKED.value)

        previous_baseline = self.reconciler.baseline_for(self.menu.id)

        def snapshot() -> LockStatus:
            return self.menu.lock_status

        def restore(status: LockStatus) -> None:
            self.menu.apply_lock_status(status)
            self.reconciler.discard_baseline(self.menu.id)
            self.reconciler.restore_baseline(previous_baseline)

        def apply() -> LockStatus:
            self.reconciler.capture_baseline(self.menu.id, self.store.items)
            status = LockStatus.locked_now(self.identity)
            self.menu.apply_lock_status(status)
            return status

        def reconcile(_: LockStatus, response: LockResponse) -> None:
            self.menu.apply_lock_status(response.status)

        outcome = await self.engine.execute(
            "lock",
            snapshot=snapshot,
            restore=restore,
            apply=apply,
            commit=lambda _: self.api.set_lock(self.menu.id, True),
            reconcile=reconcile,
            action="lock menu",
        )
        if outcome.succeeded:
            self.notifications.success("Menu locked", operation="lock")
        return outcome

    async def unlock(self) -> MutationOutcome[LockResponse]:
        if not self.is_locked:
            raise InvalidLockTransitionError(self.state.value, LockState.UNLOCKED.value)

        def apply() -> LockStatus:
            status = LockStatus.unlocked()
            self.menu.apply_lock_status(status)
            return status

        def reconcile(_: LockStatus, response: LockResponse) -> None:
            self.menu.apply_lock_status(response.status)

        outcome = await self.engine.execute(
            "unlock",
            snapshot=lambda: self.menu.lock_status,
            restore=self.menu.apply_lock_status,
            apply=apply,
            commit=lambda _: self.api.set_lock(self.menu.id, False),
            reconcile=reconcile,
            action="unlock menu",
        )
        if outcome.succeeded:
            self._review_changes(outcome.result)
        return outcome

    def _review_changes(self, response: LockResponse) -> None:
        # the unlock already stands; a failed diff only means no review
        try:
            change_set = self.reconciler.reconcile(self.menu.id, response)
        except Exception as e:
            logger.error(f"Price reconciliation for menu {self.menu.id} failed: {e}", exc_info=True)
            self.notifications.success("Menu unlocked", operation="unlock")
            return

        if change_set.has_changes:
            self.review.open(change_set)
        else:
            self.notifications.success("Menu unlocked", operation="unlock")

    def apply_external_status(self, status: LockStatus) -> bool:
        """Apply a lock status fetched from elsewhere unless the fence is up."""
        if not self.fence.allows_refresh():
            return False
        if status != self.menu.lock_status:
            logger.info(f"Menu {self.menu.id} lock status changed externally to {status.is_locked}")
        self.menu.apply_lock_status(status)
        return True

    def restore_baseline_if_missing(self) -> None:
        """A menu opened while already locked gets its baseline from current items."""
        if self.is_locked and self.reconciler.baseline_for(self.menu.id) is None:
            self.reconciler.capture_baseline(self.menu.id, self.store.items)
