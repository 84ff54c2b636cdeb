# backend/modules/menu_builder/services/__init__.py

from .menu_api_client import MenuApiClient
from .item_store import MenuItemStore
from .optimistic_engine import MutationOutcome, OptimisticMutationEngine
from .menu_lock_service import LockState, MenuLockService
from .change_reconciler import ChangeReconciler, ChangeReview
from .menu_editor_service import EditorView, MenuEditorService

__all__ = [
    "MenuApiClient",
    "MenuItemStore",
    "MutationOutcome",
    "OptimisticMutationEngine",
    "LockState",
    "MenuLockService",
    "ChangeReconciler",
    "ChangeReview",
    "EditorView",
    "MenuEditorService",
]
