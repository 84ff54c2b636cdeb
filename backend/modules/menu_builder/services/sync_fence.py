# backend/modules/menu_builder/services/sync_fence.py

import itertools
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from core.config import settings

logger = logging.getLogger(__name__)


class SyncFence:
    """Short window after a local transition during which external
    refreshes are ignored, so a slow refresh cannot clobber the
    optimistic state.

    Each ``arm`` opens its own window identified by a token; releasing a
    token closes only that window, so a failed edit cannot lift the
    fence a concurrent lock transition raised.
    """

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = (
            settings.lock_fence_window_seconds if window_seconds is None else window_seconds
        )
        self.clock = clock
        self._windows: Dict[int, Tuple[float, str]] = {}
        self._tokens = itertools.count(1)

    def arm(self, reason: str = "", token: Optional[int] = None) -> int:
        """Open (or extend, when ``token`` is given) a window; returns its token."""
        if token is None:
            token = next(self._tokens)
        self._windows[token] = (self.clock() + self.window_seconds, reason)
        logger.debug(f"Sync fence armed for {self.window_seconds}s ({reason})")
        return token

    def release(self, token: Optional[int] = None) -> None:
        """Close one window, or every window when no token is given."""
        if token is None:
            self._windows.clear()
        else:
            self._windows.pop(token, None)

    def _open_windows(self) -> Dict[int, Tuple[float, str]]:
        now = self.clock()
        self._windows = {
            token: window for token, window in self._windows.items() if now < window[0]
        }
        return self._windows

    @property
    def active(self) -> bool:
        return bool(self._open_windows())

    @property
    def reason(self) -> Optional[str]:
        windows = self._open_windows()
        if not windows:
            return None
        return windows[max(windows)][1]

    def allows_refresh(self) -> bool:
        if self.active:
            logger.debug(f"External refresh suppressed by sync fence ({self.reason})")
            return False
        return True
