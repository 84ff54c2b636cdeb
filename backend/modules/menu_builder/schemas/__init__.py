# backend/modules/menu_builder/schemas/__init__.py

from .menu_builder_schemas import (
    UNCATEGORIZED,
    TEMP_ID_PREFIX,
    ItemIdState,
    EntryType,
    Severity,
    ItemRef,
    DishSummary,
    RecipeSummary,
    CatalogEntry,
    LockStatus,
    Menu,
    MenuItem,
    ChangeRecord,
    TrackedChange,
    ChangeSet,
    LockResponse,
    Notification,
)

__all__ = [
    "UNCATEGORIZED",
    "TEMP_ID_PREFIX",
    "ItemIdState",
    "EntryType",
    "Severity",
    "ItemRef",
    "DishSummary",
    "RecipeSummary",
    "CatalogEntry",
    "LockStatus",
    "Menu",
    "MenuItem",
    "ChangeRecord",
    "TrackedChange",
    "ChangeSet",
    "LockResponse",
    "Notification",
]
