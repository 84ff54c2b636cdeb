"""
Custom exceptions for the menu builder client.

This module provides the error taxonomy shared by the HTTP boundary,
the optimistic mutation engine and the editor facade so that every
failure carries a consistent message, error code and optional details.
"""

from typing import Any, Dict, List, Optional
import logging

import httpx

logger = logging.getLogger(__name__)

CONNECTION_HINT = "Please check your connection and try again."


class MenuBuilderError(Exception):
    """Base error with consistent structure"""

    def __init__(
        self,
        message: str,
        error_code: str = "MENU_BUILDER_ERROR",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class MenuValidationError(MenuBuilderError):
    """Validation error, raised locally before any state change"""

    def __init__(
        self,
        message: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            error_code=error_code,
            status_code=httpx.codes.BAD_REQUEST,
            details=details,
        )


class CategoryExistsError(MenuValidationError):
    """Category name collision on add or rename"""

    def __init__(self, category: str):
        super().__init__(
            f'Category "{category}" already exists',
            error_code="CATEGORY_EXISTS",
            details={"category": category},
        )


class LastCategoryError(MenuValidationError):
    def __init__(self, category: str):
        super().__init__(
            "Cannot remove the last category",
            error_code="LAST_CATEGORY",
            details={"category": category},
        )


class MenuLockedError(MenuValidationError):
    """Mutation attempted while the menu is locked (read-only)"""

    def __init__(self, menu_id: str, operation: str):
        super().__init__(
            "This menu is locked. Unlock it to make changes.",
            error_code="MENU_LOCKED",
            details={"menu_id": menu_id, "operation": operation},
        )


class InvalidLockTransitionError(MenuValidationError):
    def __init__(self, current_state: str, requested_state: str):
        super().__init__(
            f"Menu is already {current_state}",
            error_code="INVALID_LOCK_TRANSITION",
            details={"current": current_state, "requested": requested_state},
        )


class ItemPendingError(MenuValidationError):
    """Operation targets an item the server has not confirmed yet"""

    def __init__(self, item_id: str):
        super().__init__(
            "This item is still being saved. Please wait a moment and try again.",
            error_code="ITEM_PENDING",
            details={"item_id": item_id},
        )


class MenuNotFoundError(MenuBuilderError):
    """Resource not found error"""

    def __init__(
        self,
        message: str = "Resource not found",
        error_code: str = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            error_code=error_code,
            status_code=httpx.codes.NOT_FOUND,
            details=details,
        )


class CatalogEntryNotFoundError(MenuNotFoundError):
    def __init__(self, entry_type: str, entry_id: str):
        super().__init__(
            f"{entry_type.capitalize()} not found",
            error_code="CATALOG_ENTRY_NOT_FOUND",
            details={"entry_type": entry_type, "entry_id": entry_id},
        )


class MenuConflictError(MenuBuilderError):
    """Resource conflict error"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            error_code="CONFLICT",
            status_code=httpx.codes.CONFLICT,
            details=details,
        )


class MenuAuthorizationError(MenuBuilderError):
    """Expired or missing session"""

    def __init__(self, message: str = "Your session has expired"):
        super().__init__(
            message,
            error_code="AUTH_EXPIRED",
            status_code=httpx.codes.UNAUTHORIZED,
        )


class MenuNetworkError(MenuBuilderError):
    """Transport failure or timeout talking to the menu service"""

    def __init__(self, message: str = "Network error", error_code: str = "NETWORK_ERROR"):
        super().__init__(message, error_code=error_code)


class MenuLoadTimeoutError(MenuNetworkError):
    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"Request timed out after {timeout_seconds:g} seconds",
            error_code="LOAD_TIMEOUT",
        )
        self.timeout_seconds = timeout_seconds


class MenuApiError(MenuBuilderError):
    """Non-2xx response or explicit success: false from the menu service"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: str = "API_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message, error_code=error_code, status_code=status_code, details=details
        )


class PartialBatchError(MenuBuilderError):
    """Some requests of a multi-request operation failed"""

    def __init__(self, operation: str, failures: List[Dict[str, Any]], total: int):
        super().__init__(
            f"{len(failures)} of {total} items could not be updated",
            error_code="PARTIAL_BATCH_FAILURE",
            details={"operation": operation, "failures": failures, "total": total},
        )
        self.failures = failures
        self.total = total


def describe_failure(action: str, error: MenuBuilderError) -> str:
    """Build the user-facing notification text for a failed mutation."""
    if isinstance(error, MenuNetworkError):
        return f"Failed to {action}. {CONNECTION_HINT}"
    if isinstance(error, MenuAuthorizationError):
        return "Your session has expired. Redirecting to sign in..."
    return f"Failed to {action}: {error.message}"
