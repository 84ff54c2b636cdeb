# backend/modules/menu_builder/schemas/menu_builder_schemas.py

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import threading
import time

UNCATEGORIZED = "Uncategorized"
TEMP_ID_PREFIX = "temp-"

_token_lock = threading.Lock()
_last_token = 0


def next_temp_token() -> int:
    """Strictly increasing token for client-side temporary ids."""
    global _last_token
    with _token_lock:
        _last_token = max(time.monotonic_ns(), _last_token + 1)
        return _last_token


class ItemIdState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class EntryType(str, Enum):
    DISH = "dish"
    RECIPE = "recipe"


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ItemRef(BaseModel):
    """Identity of a menu item: a server id, or a client temp id awaiting one."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1)
    state: ItemIdState = ItemIdState.CONFIRMED

    @classmethod
    def confirmed(cls, value: Any) -> "ItemRef":
        return cls(value=str(value), state=ItemIdState.CONFIRMED)

    @classmethod
    def pending(cls) -> "ItemRef":
        return cls(value=f"{TEMP_ID_PREFIX}{next_temp_token()}", state=ItemIdState.PENDING)

    @classmethod
    def from_wire(cls, value: Any) -> "ItemRef":
        text = str(value)
        if text.startswith(TEMP_ID_PREFIX):
            return cls(value=text, state=ItemIdState.PENDING)
        return cls.confirmed(text)

    @property
    def is_pending(self) -> bool:
        return self.state == ItemIdState.PENDING

    def __str__(self) -> str:
        return self.value


def _coerce_ref(value: Any) -> Any:
    if isinstance(value, (ItemRef, dict)):
        return value
    return ItemRef.from_wire(value)


# Catalog schemas
class DishSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    dish_name: str
    description: Optional[str] = None
    selling_price: Optional[float] = None

    @field_validator("id", mode="before")
    def stringify_id(cls, v):
        return str(v)


class RecipeSummary(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    recipe_name: str
    description: Optional[str] = None
    yield_: Optional[float] = Field(None, alias="yield")
    recommended_price: Optional[float] = None

    @field_validator("id", mode="before")
    def stringify_id(cls, v):
        return str(v)


class CatalogEntry(BaseModel):
    """Display payload used to build a placeholder item before the server answers."""

    entry_type: EntryType
    id: str
    name: str
    description: Optional[str] = None
    price: Optional[float] = None

    @classmethod
    def from_dish(cls, dish: DishSummary) -> "CatalogEntry":
        return cls(
            entry_type=EntryType.DISH,
            id=dish.id,
            name=dish.dish_name,
            description=dish.description,
            price=dish.selling_price,
        )

    @classmethod
    def from_recipe(cls, recipe: RecipeSummary) -> "CatalogEntry":
        return cls(
            entry_type=EntryType.RECIPE,
            id=recipe.id,
            name=recipe.recipe_name,
            description=recipe.description,
            price=recipe.recommended_price,
        )


# Menu schemas
class LockStatus(BaseModel):
    is_locked: bool = False
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None

    @model_validator(mode="after")
    def check_lock_fields(self):
        if self.is_locked and (self.locked_at is None or self.locked_by is None):
            raise ValueError("locked_at and locked_by are required when locked")
        if not self.is_locked and (self.locked_at is not None or self.locked_by is not None):
            raise ValueError("locked_at and locked_by must be empty when unlocked")
        return self

    @classmethod
    def locked_now(cls, locked_by: str) -> "LockStatus":
        return cls(is_locked=True, locked_at=datetime.now(timezone.utc), locked_by=locked_by)

    @classmethod
    def unlocked(cls) -> "LockStatus":
        return cls(is_locked=False)


class Menu(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    menu_name: str = Field(..., min_length=1)
    description: Optional[str] = None
    menu_type: Optional[str] = "a_la_carte"
    is_locked: bool = False
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    def stringify_id(cls, v):
        return str(v)

    @model_validator(mode="after")
    def check_lock_fields(self):
        LockStatus(
            is_locked=self.is_locked, locked_at=self.locked_at, locked_by=self.locked_by
        )
        return self

    @property
    def lock_status(self) -> LockStatus:
        return LockStatus(
            is_locked=self.is_locked, locked_at=self.locked_at, locked_by=self.locked_by
        )

    def apply_lock_status(self, status: LockStatus) -> None:
        """Write all three lock fields together."""
        self.is_locked = status.is_locked
        self.locked_at = status.locked_at
        self.locked_by = status.locked_by


class MenuItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: ItemRef
    menu_id: str
    dish_id: Optional[str] = None
    recipe_id: Optional[str] = None
    category: str = UNCATEGORIZED
    position: int = Field(default=0, ge=0)
    name: Optional[str] = None
    description: Optional[str] = None
    recommended_selling_price: Optional[float] = None
    actual_selling_price: Optional[float] = None
    region: Optional[str] = None
    allergens: List[str] = []

    @field_validator("id", mode="before")
    def coerce_id(cls, v):
        return _coerce_ref(v)

    @field_validator("menu_id", "dish_id", "recipe_id", mode="before")
    def stringify_ids(cls, v):
        return None if v is None else str(v)

    @field_validator("category", mode="before")
    def default_category(cls, v):
        if v is None or not str(v).strip():
            return UNCATEGORIZED
        return str(v)

    @model_validator(mode="after")
    def check_source(self):
        if (self.dish_id is None) == (self.recipe_id is None):
            raise ValueError("A menu item references exactly one of dish_id or recipe_id")
        return self

    @property
    def entry_type(self) -> EntryType:
        return EntryType.DISH if self.dish_id is not None else EntryType.RECIPE

    @property
    def is_pending(self) -> bool:
        return self.id.is_pending

    @property
    def effective_price(self) -> Optional[float]:
        if self.actual_selling_price is not None:
            return self.actual_selling_price
        return self.recommended_selling_price

    @property
    def display_name(self) -> str:
        return self.name or f"{self.entry_type.value} {self.dish_id or self.recipe_id}"

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["id"] = self.id.value
        return data


# Change tracking schemas
class ChangeRecord(BaseModel):
    """A price that drifted between lock and unlock."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    item_name: Optional[str] = None
    previous_price: float
    new_price: float
    delta: float


class TrackedChange(BaseModel):
    """Server-side record of an underlying dish/recipe/ingredient edit."""

    model_config = ConfigDict(extra="allow")

    entity_type: str
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    change_type: Optional[str] = None
    change_details: Dict[str, Any] = {}
    changed_at: Optional[datetime] = None

    @field_validator("entity_id", mode="before")
    def stringify_id(cls, v):
        return None if v is None else str(v)


class ChangeSet(BaseModel):
    menu_id: str
    records: List[ChangeRecord] = []
    tracked_changes: List[TrackedChange] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_changes(self) -> bool:
        return bool(self.records or self.tracked_changes)

    def counts_by_entity(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for change in self.tracked_changes:
            counts[change.entity_type] = counts.get(change.entity_type, 0) + 1
        return counts

    def summary(self) -> str:
        """Human readable summary, e.g. "2 dishes, 1 recipe, 3 price changes"."""
        parts = []
        for entity_type, count in self.counts_by_entity().items():
            noun = entity_type if count == 1 else _plural(entity_type)
            parts.append(f"{count} {noun}")
        if self.records:
            noun = "price change" if len(self.records) == 1 else "price changes"
            parts.append(f"{len(self.records)} {noun}")
        return ", ".join(parts) if parts else "No changes"


def _plural(noun: str) -> str:
    if noun.endswith(("s", "sh", "ch")):
        return f"{noun}es"
    return f"{noun}s"


class LockResponse(BaseModel):
    """Result of a lock or unlock request."""

    model_config = ConfigDict(populate_by_name=True)

    status: LockStatus
    has_changes: bool = Field(False, alias="hasChanges")
    changes: List[TrackedChange] = []
    current_prices: Dict[str, Optional[float]] = {}
    items: List[MenuItem] = []


class Notification(BaseModel):
    message: str
    severity: Severity = Severity.INFO
    operation: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
