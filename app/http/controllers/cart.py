"""
Cart routes.
User-scoped routes (/cart/user/..., /cart/merge) need a bearer token; cart-id routes do not.
Cart ids are Shopify GIDs (gid://shopify/Cart/...), so they are matched with the path convertor
and URL-decoded once more for clients that double-encode them.
"""
import logging
from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth import get_current_user
from app.dependencies import get_cart_service
from app.errors import ERROR_CART_NOT_FOUND, ERROR_INVALID_USER_ID, ShopifyError
from app.http.controllers.helpers import require_positive_id, shopify_failure
from app.http.requests.schemas import (
    AddCartItemsRequest,
    CheckoutRequest,
    CreateCartRequest,
    MergeCartRequest,
    RemoveCartItemsRequest,
    UpdateCartItemsRequest,
)
from app.services.cart_service import CartService

logger = logging.getLogger(__name__)

router = APIRouter()


def _add_items(request: AddCartItemsRequest) -> list[dict]:
    return [item.model_dump(by_alias=True) for item in request.items]


def _update_items(request: UpdateCartItemsRequest) -> list[dict]:
    return [item.model_dump(by_alias=True) for item in request.items]


# ==================== CART MERGE (call right after login) ====================

@router.post("/merge")
async def merge_carts(
    request: MergeCartRequest,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    """Merge the guest (session) cart into the user's saved cart."""
    user_id = require_positive_id(request.user_id, "userId is required")
    try:
        result = await carts.merge_carts_on_login(user_id, request.guest_cart_id, current_user.get("email"))
    except ShopifyError as e:
        raise shopify_failure("Failed to merge carts", e)
    return {
        "success": True,
        "message": result.message,
        "merged": result.merged,
        "itemsMerged": result.items_merged,
        "data": result.cart,
    }


@router.post("/checkout")
async def checkout(request: CheckoutRequest, carts: CartService = Depends(get_cart_service)):
    """Checkout URL for a cart; with a customer token the buyer identity is attached first."""
    cart_id = unquote(request.cart_id)
    try:
        result = await carts.checkout(cart_id, request.customer_access_token)
    except ShopifyError as e:
        raise shopify_failure("Failed to generate checkout URL", e)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_CART_NOT_FOUND)
    return {
        "success": True,
        "message": "Checkout URL generated successfully",
        "checkoutUrl": result["checkoutUrl"],
        "buyerIdentity": result["buyerIdentity"],
    }


# ==================== USER CARTS ====================

@router.get("/user/{user_id}")
async def get_user_cart(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    """Get (or create) the user's persistent cart"""
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        cart = await carts.resolve_user_cart(customer_id, current_user.get("email"))
    except ShopifyError as e:
        raise shopify_failure("Failed to get user cart", e)
    return {"success": True, "data": cart}


@router.delete("/user/{user_id}")
async def clear_user_cart(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    """Forget the user's cart; the next access starts a new one."""
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        await carts.clear_user_cart(customer_id)
    except ShopifyError as e:
        raise shopify_failure("Failed to clear user cart", e)
    return {"success": True, "message": "User cart cleared successfully"}


@router.post("/user/{user_id}/items")
async def add_user_cart_items(
    user_id: str,
    request: AddCartItemsRequest,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        user_cart = await carts.resolve_user_cart(customer_id, current_user.get("email"))
        cart = await carts.add_line_items(user_cart["cartId"], _add_items(request))
    except ShopifyError as e:
        raise shopify_failure("Failed to add items to cart", e)
    return {"success": True, "message": "Items added to cart successfully", "data": cart}


@router.put("/user/{user_id}/items")
async def update_user_cart_items(
    user_id: str,
    request: UpdateCartItemsRequest,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        user_cart = await carts.resolve_user_cart(customer_id, current_user.get("email"))
        cart = await carts.update_line_items(user_cart["cartId"], _update_items(request))
    except ShopifyError as e:
        raise shopify_failure("Failed to update cart items", e)
    return {"success": True, "message": "Cart items updated successfully", "data": cart}


@router.delete("/user/{user_id}/items")
async def remove_user_cart_items(
    user_id: str,
    request: RemoveCartItemsRequest,
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        user_cart = await carts.resolve_user_cart(customer_id, current_user.get("email"))
        cart = await carts.remove_line_items(user_cart["cartId"], request.line_ids)
    except ShopifyError as e:
        raise shopify_failure("Failed to remove items from cart", e)
    return {"success": True, "message": "Items removed from cart successfully", "data": cart}


# ==================== CARTS BY ID ====================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_cart(
    request: Optional[CreateCartRequest] = None,
    carts: CartService = Depends(get_cart_service),
):
    """Create a new (guest) cart"""
    request = request or CreateCartRequest()
    try:
        cart = await carts.create_cart(request.email, request.customer_access_token)
    except ShopifyError as e:
        raise shopify_failure("Failed to create cart", e)
    return {"success": True, "message": "Cart created successfully", "data": cart}


@router.get("/{cart_id:path}")
async def get_cart(cart_id: str, carts: CartService = Depends(get_cart_service)):
    cart_id = unquote(cart_id)
    if not cart_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart ID is required")
    try:
        cart = await carts.get_cart(cart_id)
    except ShopifyError as e:
        raise shopify_failure("Failed to get cart", e)
    if cart is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_CART_NOT_FOUND)
    return {"success": True, "data": cart}


@router.post("/{cart_id:path}/items")
async def add_cart_items(
    cart_id: str,
    request: AddCartItemsRequest,
    carts: CartService = Depends(get_cart_service),
):
    try:
        cart = await carts.add_line_items(unquote(cart_id), _add_items(request))
    except ShopifyError as e:
        raise shopify_failure("Failed to add items to cart", e)
    return {"success": True, "message": "Items added to cart successfully", "data": cart}


@router.put("/{cart_id:path}/items")
async def update_cart_items(
    cart_id: str,
    request: UpdateCartItemsRequest,
    carts: CartService = Depends(get_cart_service),
):
    try:
        cart = await carts.update_line_items(unquote(cart_id), _update_items(request))
    except ShopifyError as e:
        raise shopify_failure("Failed to update cart items", e)
    return {"success": True, "message": "Cart items updated successfully", "data": cart}


@router.delete("/{cart_id:path}/items")
async def remove_cart_items(
    cart_id: str,
    request: RemoveCartItemsRequest,
    carts: CartService = Depends(get_cart_service),
):
    try:
        cart = await carts.remove_line_items(unquote(cart_id), request.line_ids)
    except ShopifyError as e:
        raise shopify_failure("Failed to remove items from cart", e)
    return {"success": True, "message": "Items removed from cart successfully", "data": cart}
