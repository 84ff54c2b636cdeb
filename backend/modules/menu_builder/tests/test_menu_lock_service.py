# backend/modules/menu_builder/tests/test_menu_lock_service.py

"""
Tests for the menu lock state machine.

Tests optimistic lock/unlock transitions, rollback on failure, the
sync fence against stale external refreshes and the locked fast path
when opening a menu.
"""

import asyncio

import pytest

from core.config import Settings
from core.exceptions import InvalidLockTransitionError
from modules.menu_builder.schemas import LockStatus, Menu
from modules.menu_builder.services.menu_editor_service import MenuEditorService
from modules.menu_builder.services.menu_lock_service import LockState


class TestMenuLockService:
    """Test lock transitions through the editor"""

    @pytest.mark.asyncio
    async def test_lock_is_optimistic(self, editor, backend):
        gate = backend.hold()
        task = asyncio.create_task(editor.lock())
        await asyncio.sleep(0)

        assert editor.lock_service.state == LockState.LOCKED
        assert editor.menu.locked_by == "chef@example.com"
        assert editor.menu.locked_at is not None

        gate.set()
        outcome = await task

        assert outcome.succeeded
        # server values win on reconcile
        assert editor.menu.locked_by == "server@example.com"
        assert backend.calls("POST", "/lock")[0]["json"] == {"locked": True}

    @pytest.mark.asyncio
    async def test_lock_failure_rolls_back(self, editor, backend, notifications):
        backend.fail("POST", r"/lock$", status=409, error="Menu is being edited")

        outcome = await editor.lock()

        assert not outcome.succeeded
        assert editor.lock_service.state == LockState.UNLOCKED
        assert editor.menu.locked_at is None
        assert editor.menu.locked_by is None
        assert editor.reconciler.baseline_for(editor.menu.id) is None
        assert notifications.errors()[0].message == "Failed to lock menu: Menu is being edited"

    @pytest.mark.asyncio
    async def test_lock_captures_baseline(self, editor):
        await editor.lock()

        baseline = editor.reconciler.baseline_for(editor.menu.id)
        assert baseline.prices["1"] == 24.0
        assert baseline.prices["5"] == 12.0

    @pytest.mark.asyncio
    async def test_invalid_transitions(self, editor, backend):
        with pytest.raises(InvalidLockTransitionError):
            await editor.unlock()

        await editor.lock()
        with pytest.raises(InvalidLockTransitionError):
            await editor.lock()

        assert len(backend.calls("POST", "/lock")) == 1

    @pytest.mark.asyncio
    async def test_unlock_failure_stays_locked(self, editor, backend, notifications):
        await editor.lock()
        backend.fail("POST", r"/lock$", network=True)

        outcome = await editor.unlock()

        assert not outcome.succeeded
        assert editor.lock_service.is_locked
        assert editor.menu.locked_by == "server@example.com"
        assert editor.review.pending is None

    @pytest.mark.asyncio
    async def test_unlock_without_changes_notifies_success(self, editor, notifications):
        await editor.lock()

        outcome = await editor.unlock()

        assert outcome.succeeded
        assert not editor.lock_service.is_locked
        assert editor.review.pending is None
        assert notifications.history[-1].message == "Menu unlocked"


class TestSyncFence:
    """Test that external refreshes cannot clobber a fresh local transition"""

    @pytest.fixture
    def fenced_settings(self):
        return Settings(_env_file=None, lock_fence_window_seconds=60, reauth_redirect_delay_seconds=0)

    @pytest.fixture
    async def fenced_editor(self, menu, api_client, fenced_settings):
        service = MenuEditorService(menu, api_client, identity="chef@example.com", config=fenced_settings)
        await service.open()
        yield service
        await service.close()

    @pytest.mark.asyncio
    async def test_stale_status_ignored_after_lock(self, fenced_editor):
        await fenced_editor.lock()

        applied = fenced_editor.lock_service.apply_external_status(LockStatus.unlocked())

        assert not applied
        assert fenced_editor.lock_service.is_locked

    @pytest.mark.asyncio
    async def test_status_applied_once_fence_expires(self, fenced_editor):
        await fenced_editor.lock()
        fenced_editor.fence.release()

        applied = fenced_editor.lock_service.apply_external_status(LockStatus.unlocked())

        assert applied
        assert not fenced_editor.lock_service.is_locked

    @pytest.mark.asyncio
    async def test_item_reload_ignored_inside_window(self, fenced_editor, backend):
        await fenced_editor.reorder_item("1", "3")
        backend.find("1")["position"] = 0

        assert await fenced_editor.reload() is False
        assert fenced_editor.store.require("1").position == 2

    @pytest.mark.asyncio
    async def test_failed_edit_keeps_unlock_fence(self, fenced_editor, backend):
        await fenced_editor.lock()
        fenced_editor.fence.release()
        backend.fail("PUT", r"/items/1$")
        gate = backend.hold()

        unlock = asyncio.create_task(fenced_editor.unlock())
        await asyncio.sleep(0)
        price = asyncio.create_task(fenced_editor.update_price("1", 30.0))
        await asyncio.sleep(0)
        gate.set()
        unlock_outcome, price_outcome = await asyncio.gather(unlock, price)

        assert unlock_outcome.succeeded
        assert not price_outcome.succeeded
        assert fenced_editor.fence.active

        applied = fenced_editor.lock_service.apply_external_status(LockStatus.locked_now("stale"))

        assert not applied
        assert not fenced_editor.lock_service.is_locked

    @pytest.mark.asyncio
    async def test_fence_released_on_rollback(self, fenced_editor, backend):
        backend.fail("POST", r"/lock$")

        await fenced_editor.lock()

        assert not fenced_editor.fence.active
        assert fenced_editor.lock_service.apply_external_status(LockStatus.unlocked())


class TestLockedOpen:
    """Test opening a menu that is already locked"""

    @pytest.fixture
    def locked_menu(self, backend):
        backend.menu.update(
            is_locked=True,
            locked_at="2026-10-01T18:00:00+00:00",
            locked_by="chef@example.com",
        )
        return Menu.model_validate(backend.menu)

    @pytest.mark.asyncio
    async def test_items_first_catalog_deferred(self, locked_menu, api_client, backend, test_settings):
        service = MenuEditorService(locked_menu, api_client, config=test_settings)

        view = await service.open()

        assert view.read_only
        assert len(view.items) == 5
        assert [r["path"] for r in backend.requests] == ["/api/menus/menu-1"]
        assert service.catalog_task is not None

        await service.catalog_task
        assert [d.id for d in service.dishes] == ["d1", "d2"]
        assert service.statistics.statistics["totalItems"] == 5
        await service.close()

    @pytest.mark.asyncio
    async def test_baseline_captured_for_locked_menu(self, locked_menu, api_client, test_settings):
        service = MenuEditorService(locked_menu, api_client, config=test_settings)

        await service.open()

        assert service.reconciler.baseline_for("menu-1").prices["4"] == 8.0
        await service.close()
