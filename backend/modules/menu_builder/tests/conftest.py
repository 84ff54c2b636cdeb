# backend/modules/menu_builder/tests/conftest.py

"""
Pytest configuration for menu builder tests.
Provides an in-memory fake of the menu service behind httpx.MockTransport
and editor fixtures wired to it.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional

import httpx
import pytest

from core.config import Settings
from core.memory_cache import LRUCache
from modules.menu_builder.schemas import Menu
from modules.menu_builder.services.menu_api_client import MenuApiClient
from modules.menu_builder.services.menu_editor_service import MenuEditorService
from modules.menu_builder.services.notification_service import NotificationService

MENU_ID = "menu-1"

MENU_PATH = re.compile(r"^/api/menus/(?P<menu_id>[^/]+)$")
ITEMS_PATH = re.compile(r"^/api/menus/(?P<menu_id>[^/]+)/items$")
ITEM_PATH = re.compile(r"^/api/menus/(?P<menu_id>[^/]+)/items/(?P<item_id>[^/]+)$")
ACTION_PATH = re.compile(
    r"^/api/menus/(?P<menu_id>[^/]+)/(?P<action>statistics|reorder|lock|recalculate-prices|changes/handle)$"
)


class FakeMenuBackend:
    """Minimal stateful stand-in for the menu persistence service"""

    def __init__(self, locked: bool = False):
        self.menu: Dict[str, Any] = {
            "id": MENU_ID,
            "menu_name": "Dinner",
            "description": "Evening service",
            "menu_type": "a_la_carte",
            "is_locked": locked,
            "locked_at": "2026-10-01T18:00:00+00:00" if locked else None,
            "locked_by": "chef@example.com" if locked else None,
        }
        self.items: List[Dict[str, Any]] = []
        self.dishes = [
            {"id": "d1", "dish_name": "Steak Frites", "description": "Sirloin", "selling_price": 24.0},
            {"id": "d2", "dish_name": "Caesar Salad", "description": None, "selling_price": 11.5},
        ]
        self.recipes = [
            {"id": "r1", "recipe_name": "Creme Brulee", "description": "Vanilla", "yield": 6, "recommended_price": 8.0},
        ]
        self.statistics = {"totalItems": 0, "averagePrice": 0}
        self.requests: List[Dict[str, Any]] = []
        self.failures: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.recalculated_prices: Dict[str, float] = {}
        self.tracked_changes: List[Dict[str, Any]] = []
        self.recalculated = False
        self.changes_handled = 0
        self._next_id = 100

    # Seeding

    def add_item(self, item_id: str, category: str, position: int, **fields) -> Dict[str, Any]:
        item = {
            "id": item_id,
            "menu_id": MENU_ID,
            "dish_id": fields.pop("dish_id", None if "recipe_id" in fields else "d1"),
            "recipe_id": fields.pop("recipe_id", None),
            "category": category,
            "position": position,
            "name": fields.pop("name", f"Item {item_id}"),
            "recommended_selling_price": fields.pop("recommended_selling_price", 12.0),
            "actual_selling_price": fields.pop("actual_selling_price", None),
        }
        item.update(fields)
        self.items.append(item)
        return item

    def fail(
        self,
        method: str,
        path_pattern: str,
        status: int = 500,
        times: Optional[int] = None,
        error: str = "Internal server error",
        network: bool = False,
    ) -> None:
        """Fail matching requests (``times`` None = always)."""
        self.failures.append(
            {
                "method": method,
                "pattern": re.compile(path_pattern),
                "status": status,
                "times": times,
                "error": error,
                "network": network,
            }
        )

    def hold(self) -> asyncio.Event:
        """Block every request until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    def calls(self, method: str, path_fragment: str = "") -> List[Dict[str, Any]]:
        return [
            r for r in self.requests
            if r["method"] == method and path_fragment in r["path"]
        ]

    def find(self, item_id: str) -> Optional[Dict[str, Any]]:
        return next((i for i in self.items if str(i["id"]) == str(item_id)), None)

    # Transport

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.requests.append({"method": request.method, "path": path, "json": body})

        if self.gate is not None:
            await self.gate.wait()

        for failure in self.failures:
            if failure["method"] != request.method or not failure["pattern"].search(path):
                continue
            if failure["times"] is not None:
                if failure["times"] <= 0:
                    continue
                failure["times"] -= 1
            if failure["network"]:
                raise httpx.ConnectError("Connection refused", request=request)
            return httpx.Response(failure["status"], json={"success": False, "error": failure["error"]})

        return self._route(request.method, path, body or {})

    def _route(self, method: str, path: str, body: Dict[str, Any]) -> httpx.Response:
        if method == "GET" and path == "/api/dishes":
            return self._ok(dishes=self.dishes)
        if method == "GET" and path == "/api/recipes":
            return self._ok(recipes=self.recipes)

        match = MENU_PATH.match(path)
        if match and method == "GET":
            return self._ok(menu={**self.menu, "items": [dict(i) for i in self.items]})

        match = ITEMS_PATH.match(path)
        if match and method == "POST":
            return self._create(body)

        match = ITEM_PATH.match(path)
        if match:
            item = self.find(match.group("item_id"))
            if item is None:
                return httpx.Response(404, json={"success": False, "error": "Menu item not found"})
            if method == "PUT":
                item.update(body)
                return self._ok(item=dict(item))
            if method == "DELETE":
                self.items.remove(item)
                self._compact(item["category"])
                return self._ok()

        match = ACTION_PATH.match(path)
        if match:
            return self._action(match.group("action"), body)

        return httpx.Response(404, json={"success": False, "error": f"No route for {method} {path}"})

    def _compact(self, category: str) -> None:
        members = sorted(
            (i for i in self.items if i["category"] == category), key=lambda i: i["position"]
        )
        for index, member in enumerate(members):
            member["position"] = index

    def _create(self, body: Dict[str, Any]) -> httpx.Response:
        self._next_id += 1
        source = self.dishes if body.get("dish_id") else self.recipes
        key = "dish_id" if body.get("dish_id") else "recipe_id"
        entry = next(e for e in source if e["id"] == body[key])
        item = {
            "id": str(self._next_id),
            "menu_id": MENU_ID,
            "dish_id": body.get("dish_id"),
            "recipe_id": body.get("recipe_id"),
            "category": body["category"],
            "position": body["position"],
            "name": entry.get("dish_name") or entry.get("recipe_name"),
            "recommended_selling_price": entry.get("selling_price") or entry.get("recommended_price"),
            "actual_selling_price": None,
        }
        self.items.append(item)
        return self._ok(item=dict(item))

    def _action(self, action: str, body: Dict[str, Any]) -> httpx.Response:
        if action == "statistics":
            return self._ok(statistics={**self.statistics, "totalItems": len(self.items)})
        if action == "reorder":
            for update in body.get("items", []):
                item = self.find(update["id"])
                if item is not None:
                    item["category"] = update["category"]
                    item["position"] = update["position"]
            return self._ok()
        if action == "lock":
            locked = bool(body.get("locked"))
            self.menu["is_locked"] = locked
            self.menu["locked_at"] = "2026-10-19T12:00:00+00:00" if locked else None
            self.menu["locked_by"] = "server@example.com" if locked else None
            if not locked:
                for item in self.items:
                    if str(item["id"]) in self.recalculated_prices:
                        item["recommended_selling_price"] = self.recalculated_prices[str(item["id"])]
            return self._ok(
                menu=dict(self.menu),
                hasChanges=bool(self.tracked_changes),
                changes=self.tracked_changes if not locked else [],
                items=[dict(i) for i in self.items],
            )
        if action == "recalculate-prices":
            self.recalculated = True
            return self._ok(updated=len(self.items))
        if action == "changes/handle":
            self.changes_handled += 1
            self.tracked_changes = []
            return self._ok()
        return httpx.Response(404, json={"success": False})

    @staticmethod
    def _ok(**payload) -> httpx.Response:
        return httpx.Response(200, json={"success": True, **payload})


@pytest.fixture
def backend() -> FakeMenuBackend:
    """Fake menu service with three mains and two desserts"""
    fake = FakeMenuBackend()
    fake.add_item("1", "Mains", 0, name="Steak Frites", dish_id="d1", recommended_selling_price=24.0)
    fake.add_item("2", "Mains", 1, name="Roast Chicken", dish_id="d3", recommended_selling_price=18.0)
    fake.add_item("3", "Mains", 2, name="Risotto", recipe_id="r2", recommended_selling_price=16.0)
    fake.add_item("4", "Desserts", 0, name="Creme Brulee", recipe_id="r1", recommended_selling_price=8.0)
    fake.add_item("5", "Desserts", 1, name="Tart", recipe_id="r3", recommended_selling_price=12.0)
    return fake


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a zero-length fence and re-auth delay so tests need no sleeps"""
    return Settings(
        _env_file=None,
        lock_fence_window_seconds=0,
        reauth_redirect_delay_seconds=0,
        menu_load_timeout_seconds=2,
    )


@pytest.fixture
async def api_client(backend):
    """MenuApiClient talking to the fake backend"""
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(backend), base_url="http://testserver"
    )
    client = MenuApiClient(base_url="http://testserver", token="test-token", http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def notifications() -> NotificationService:
    return NotificationService()


@pytest.fixture
def menu(backend) -> Menu:
    return Menu.model_validate(backend.menu)


@pytest.fixture
async def editor(menu, api_client, notifications, test_settings):
    """Opened editor for the fake menu"""
    service = MenuEditorService(
        menu,
        api_client,
        identity="chef@example.com",
        notifications=notifications,
        cache=LRUCache(max_size=10, ttl_seconds=60),
        config=test_settings,
    )
    await service.open()
    yield service
    await service.close()


@pytest.fixture
def ordered_items(editor):
    """Callable returning a comparable view of the full ordered item list"""

    def snapshot():
        return [(item.id.value, item.category, item.position) for item in editor.store.items]

    return snapshot
