# backend/modules/menu_builder/services/optimistic_engine.py

"""
Optimistic mutation engine.

Every editor mutation runs through ``OptimisticMutationEngine.execute``:
the touched slice of state is snapshotted, the change is applied locally
so the UI updates immediately, the remote call is awaited, and the
result is either reconciled into local state or the snapshot is
restored and exactly one error notification is emitted.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from core.config import settings
from core.exceptions import (
    MenuAuthorizationError,
    MenuBuilderError,
    describe_failure,
)
from modules.menu_builder.services.notification_service import NotificationService
from modules.menu_builder.services.sync_fence import SyncFence

logger = logging.getLogger(__name__)

S = TypeVar("S")
C = TypeVar("C")
R = TypeVar("R")


@dataclass
class MutationOutcome(Generic[R]):
    operation: str
    succeeded: bool
    result: Optional[R] = None
    error: Optional[MenuBuilderError] = None
    committed: bool = True

    @classmethod
    def skipped(cls, operation: str) -> "MutationOutcome[Any]":
        """A no-op mutation that never reached the server."""
        return cls(operation=operation, succeeded=True, committed=False)


class OptimisticMutationEngine:
    """Runs snapshot, apply, commit and reconcile-or-rollback for one mutation"""

    def __init__(
        self,
        notifications: NotificationService,
        fence: Optional[SyncFence] = None,
        on_settled: Optional[Callable[[str, bool], None]] = None,
        on_reauth_required: Optional[Callable[[], Any]] = None,
        reauth_delay: Optional[float] = None,
    ):
        self.notifications = notifications
        self.fence = fence
        self.on_settled = on_settled
        self.on_reauth_required = on_reauth_required
        self.reauth_delay = (
            settings.reauth_redirect_delay_seconds if reauth_delay is None else reauth_delay
        )
        self._pending: Counter = Counter()
        self._reauth_handle: Optional[asyncio.TimerHandle] = None

    def is_pending(self, operation: Optional[str] = None) -> bool:
        if operation is None:
            return any(self._pending.values())
        return self._pending[operation] > 0

    @property
    def pending_operations(self) -> Dict[str, int]:
        return {name: count for name, count in self._pending.items() if count > 0}

    async def execute(
        self,
        operation: str,
        *,
        snapshot: Callable[[], S],
        restore: Callable[[S], None],
        apply: Callable[[], C],
        commit: Callable[[C], Awaitable[R]],
        reconcile: Optional[Callable[[C, R], None]] = None,
        action: Optional[str] = None,
    ) -> MutationOutcome[R]:
        """
        Run one optimistic mutation.

        Args:
            operation: Name used for pending flags and logging
            snapshot: Captures exactly the state ``apply`` will touch
            restore: Puts a snapshot back
            apply: Synchronous local update; its return value is the context
                handed to ``commit`` and ``reconcile``
            commit: The awaited remote call
            reconcile: Folds the server result into local state
            action: Verb phrase for the failure message ("remove item")

        Returns:
            MutationOutcome; failures are reported, never raised
        """
        action = action or operation.replace("_", " ")
        state = snapshot()
        context = apply()
        token = self.fence.arm(operation) if self.fence is not None else None

        self._pending[operation] += 1
        try:
            result = await commit(context)
            if reconcile is not None:
                reconcile(context, result)
        except MenuBuilderError as e:
            logger.error(f"{operation} failed, rolling back: {e.message}")
            self._rollback(operation, action, restore, state, e, token)
            return MutationOutcome(operation=operation, succeeded=False, error=e)
        except Exception as e:
            logger.critical(f"Unexpected error during {operation}: {e}", exc_info=True)
            error = MenuBuilderError(str(e) or "Unexpected error", error_code="UNKNOWN")
            self._rollback(operation, action, restore, state, error, token)
            return MutationOutcome(operation=operation, succeeded=False, error=error)
        finally:
            self._pending[operation] -= 1

        if self.fence is not None:
            self.fence.arm(operation, token=token)
        logger.debug(f"{operation} committed")
        self._settled(operation, True)
        return MutationOutcome(operation=operation, succeeded=True, result=result)

    def _rollback(
        self,
        operation: str,
        action: str,
        restore: Callable[[Any], None],
        state: Any,
        error: MenuBuilderError,
        token: Optional[int] = None,
    ) -> None:
        try:
            restore(state)
        except Exception as e:
            logger.critical(f"Rollback of {operation} failed: {e}", exc_info=True)

        if self.fence is not None:
            self.fence.release(token)

        self.notifications.error(describe_failure(action, error), operation=operation)
        if isinstance(error, MenuAuthorizationError):
            self._schedule_reauth()
        self._settled(operation, False)

    def _settled(self, operation: str, succeeded: bool) -> None:
        if self.on_settled is None:
            return
        try:
            self.on_settled(operation, succeeded)
        except Exception as e:
            logger.error(f"Post-mutation hook failed for {operation}: {e}", exc_info=True)

    def _schedule_reauth(self) -> None:
        if self.on_reauth_required is None:
            return
        if self._reauth_handle is not None and not self._reauth_handle.cancelled():
            # one redirect is enough even if several requests hit 401
            return
        loop = asyncio.get_running_loop()
        self._reauth_handle = loop.call_later(self.reauth_delay, self._fire_reauth)

    def _fire_reauth(self) -> None:
        self._reauth_handle = None
        try:
            result = self.on_reauth_required()
            if asyncio.iscoroutine(result):
                asyncio.ensure_future(result)
        except Exception as e:
            logger.error(f"Re-authentication callback failed: {e}", exc_info=True)

    def cancel_reauth(self) -> None:
        if self._reauth_handle is not None:
            self._reauth_handle.cancel()
            self._reauth_handle = None
