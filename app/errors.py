"""
Shopify error types and shared error messages.

Callers branch on the exception type, never on the message text:
- ShopifyUserError: Shopify rejected the input (userErrors, REST 422)
- ShopifyNotFoundError: Admin REST resource missing (REST 404)
- ShopifyUpstreamError: transport failure, non-2xx, GraphQL top-level errors
A missing cart is not an exception; CartService.get_cart returns None.
"""
from typing import Any, Optional


ERROR_INVALID_USER_ID = "Invalid user ID provided"
ERROR_INVALID_ADDRESS_ID = "Invalid address ID provided"
ERROR_CART_NOT_FOUND = "Cart not found"
ERROR_USER_NOT_FOUND = "User not found"
ERROR_UNAUTHORIZED = "Access token is missing or invalid"


class ShopifyError(Exception):
    """Base class for every failure reported by (or while talking to) Shopify."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ShopifyUserError(ShopifyError):
    """Business-rule rejection (invalid variant, duplicate address, ...)."""

    status_code = 422


class ShopifyNotFoundError(ShopifyError):
    status_code = 404


class ShopifyUpstreamError(ShopifyError):
    """Network error, unexpected HTTP status or GraphQL-level error."""

    status_code = 500


def first_user_error(user_errors: Optional[list]) -> Optional[str]:
    """Message of the first Shopify userError, or None when the list is empty."""
    if not user_errors:
        return None
    first = user_errors[0] or {}
    return first.get("message") or "Unknown Shopify error"
