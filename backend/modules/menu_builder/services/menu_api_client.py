# backend/modules/menu_builder/services/menu_api_client.py

"""
HTTP client for the menu persistence service.

Wraps ``httpx.AsyncClient`` and translates transport failures, non-2xx
status codes and ``success: false`` envelopes into the menu builder
exception taxonomy so callers only ever handle ``MenuBuilderError``.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from core.config import settings
from core.exceptions import (
    MenuApiError,
    MenuAuthorizationError,
    MenuConflictError,
    MenuNetworkError,
    MenuNotFoundError,
    MenuValidationError,
)
from modules.menu_builder.schemas import (
    DishSummary,
    LockResponse,
    LockStatus,
    Menu,
    MenuItem,
    RecipeSummary,
    TrackedChange,
)

logger = logging.getLogger(__name__)


class MenuApiClient:
    """Client for the menu, catalog and statistics endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.menu_api_base_url).rstrip("/")
        self.token = token if token is not None else settings.menu_api_token
        self._owns_client = http_client is None
        # mutation requests rely on httpx's default timeouts
        self.http_client = http_client or httpx.AsyncClient(base_url=self.base_url)

    async def __aenter__(self) -> "MenuApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(
                method, path, json=json, params=params, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout on {method} {path}: {e}")
            raise MenuNetworkError("Request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Network error on {method} {path}: {e}")
            raise MenuNetworkError(f"Network error: {e}") from e

        payload = self._decode(response)
        status_code = response.status_code

        if status_code >= 400:
            message = self._error_message(payload, status_code)
            logger.warning(f"{method} {path} returned {status_code}: {message}")
            if status_code == httpx.codes.UNAUTHORIZED:
                raise MenuAuthorizationError()
            if status_code == httpx.codes.NOT_FOUND:
                raise MenuNotFoundError(message, details={"path": path})
            if status_code == httpx.codes.CONFLICT:
                raise MenuConflictError(message, details={"path": path})
            if status_code in (httpx.codes.BAD_REQUEST, 422):
                raise MenuValidationError(message, details={"path": path})
            if status_code == httpx.codes.FORBIDDEN:
                raise MenuApiError(message, status_code, error_code="PERMISSION_DENIED")
            raise MenuApiError(message, status_code)

        if payload.get("success") is False:
            message = self._error_message(payload, status_code)
            logger.warning(f"{method} {path} reported failure: {message}")
            raise MenuApiError(message, status_code)

        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            logger.debug(f"Non-JSON response body ({response.status_code})")
            return {}
        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _error_message(payload: Dict[str, Any], status_code: int) -> str:
        return (
            payload.get("error")
            or payload.get("message")
            or payload.get("detail")
            or f"Request failed ({status_code})"
        )

    @staticmethod
    def _parse(model, data: Any, what: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed {what} in response: {e}")
            raise MenuApiError(f"Malformed {what} in response", error_code="BAD_RESPONSE") from e

    # Reads

    async def get_menu(self, menu_id: str) -> Tuple[Menu, List[MenuItem]]:
        payload = await self._request("GET", f"/api/menus/{menu_id}")
        data = dict(payload.get("menu") or {})
        raw_items = data.pop("items", None) or payload.get("items") or []
        menu = self._parse(Menu, data, "menu")
        items = [self._parse(MenuItem, item, "menu item") for item in raw_items]
        return menu, items

    async def list_dishes(self, page_size: Optional[int] = None) -> List[DishSummary]:
        payload = await self._request(
            "GET", "/api/dishes", params={"pageSize": page_size or settings.catalog_page_size}
        )
        return [self._parse(DishSummary, d, "dish") for d in payload.get("dishes") or []]

    async def list_recipes(self, page_size: Optional[int] = None) -> List[RecipeSummary]:
        payload = await self._request(
            "GET", "/api/recipes", params={"pageSize": page_size or settings.catalog_page_size}
        )
        return [self._parse(RecipeSummary, r, "recipe") for r in payload.get("recipes") or []]

    async def get_statistics(self, menu_id: str) -> Dict[str, Any]:
        payload = await self._request("GET", f"/api/menus/{menu_id}/statistics")
        return payload.get("statistics") or {}

    # Item mutations

    async def create_item(
        self,
        menu_id: str,
        *,
        category: str,
        position: int,
        dish_id: Optional[str] = None,
        recipe_id: Optional[str] = None,
    ) -> MenuItem:
        body: Dict[str, Any] = {"category": category, "position": position}
        if dish_id is not None:
            body["dish_id"] = dish_id
        if recipe_id is not None:
            body["recipe_id"] = recipe_id

        payload = await self._request("POST", f"/api/menus/{menu_id}/items", json=body)
        if not payload.get("item"):
            raise MenuApiError("Server did not return the created item", error_code="BAD_RESPONSE")
        return self._parse(MenuItem, payload["item"], "menu item")

    async def update_item(
        self, menu_id: str, item_id: str, fields: Dict[str, Any]
    ) -> Optional[MenuItem]:
        payload = await self._request(
            "PUT", f"/api/menus/{menu_id}/items/{item_id}", json=fields
        )
        if payload.get("item"):
            return self._parse(MenuItem, payload["item"], "menu item")
        return None

    async def delete_item(self, menu_id: str, item_id: str) -> None:
        await self._request("DELETE", f"/api/menus/{menu_id}/items/{item_id}")

    async def reorder_items(self, menu_id: str, items: List[Dict[str, Any]]) -> None:
        await self._request("POST", f"/api/menus/{menu_id}/reorder", json={"items": items})

    # Lock and change tracking

    async def set_lock(self, menu_id: str, locked: bool) -> LockResponse:
        payload = await self._request(
            "POST", f"/api/menus/{menu_id}/lock", json={"locked": locked}
        )
        menu_data = payload.get("menu") or payload
        status = self._parse(
            LockStatus,
            {
                "is_locked": menu_data.get("is_locked", locked),
                "locked_at": menu_data.get("locked_at"),
                "locked_by": menu_data.get("locked_by"),
            },
            "lock status",
        )
        items = [self._parse(MenuItem, i, "menu item") for i in payload.get("items") or []]
        return LockResponse(
            status=status,
            has_changes=bool(payload.get("hasChanges", False)),
            changes=[self._parse(TrackedChange, c, "change") for c in payload.get("changes") or []],
            current_prices={i.id.value: i.recommended_selling_price for i in items},
            items=items,
        )

    async def recalculate_prices(self, menu_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/menus/{menu_id}/recalculate-prices")

    async def mark_changes_handled(self, menu_id: str) -> None:
        await self._request("POST", f"/api/menus/{menu_id}/changes/handle")
