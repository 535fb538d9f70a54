"""
User (Shopify customer) routes: profile, metafields, addresses.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from app.auth import get_current_user
from app.dependencies import get_admin_client
from app.errors import (
    ERROR_INVALID_ADDRESS_ID,
    ERROR_INVALID_USER_ID,
    ERROR_USER_NOT_FOUND,
    ShopifyError,
    ShopifyNotFoundError,
    ShopifyUserError,
)
from app.http.controllers.helpers import require_positive_id, shopify_failure
from app.http.requests.schemas import CreateAddressRequest, UpdateAddressRequest, UpdateUserRequest
from app.services.shopify_admin import ShopifyAdminClient, format_address, format_customer

router = APIRouter()


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    """Get all details of a user, metafields included"""
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        customer = await admin.get_customer_with_metafields(customer_id)
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_USER_NOT_FOUND)
    except ShopifyError as e:
        raise shopify_failure("Failed to fetch user details", e)
    if not customer.get("id"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_USER_NOT_FOUND)
    return {"success": True, "data": format_customer(customer)}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    """Update user details and/or metafields"""
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    metafields = [mf.model_dump(exclude_none=True) for mf in request.metafields or []]
    try:
        customer = await admin.update_customer(customer_id, request.customer_fields(), metafields)
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_USER_NOT_FOUND)
    except ShopifyUserError as e:
        raise shopify_failure("Invalid data provided", e)
    except ShopifyError as e:
        raise shopify_failure("Failed to update user details", e)
    return {"success": True, "message": "User details updated successfully", "data": format_customer(customer)}


# ==================== ADDRESS MANAGEMENT ====================

@router.post("/{user_id}/address", status_code=status.HTTP_201_CREATED)
async def add_address(
    user_id: str,
    request: CreateAddressRequest,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    try:
        address = await admin.add_customer_address(customer_id, request.address_fields())
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ERROR_USER_NOT_FOUND)
    except ShopifyUserError as e:
        raise shopify_failure("Invalid address data provided", e)
    except ShopifyError as e:
        raise shopify_failure("Failed to add address", e)
    return {"success": True, "message": "Address added successfully", "data": format_address(address)}


@router.put("/{user_id}/address/{address_id}")
async def update_address(
    user_id: str,
    address_id: str,
    request: UpdateAddressRequest,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    addr_id = require_positive_id(address_id, ERROR_INVALID_ADDRESS_ID)
    try:
        address = await admin.update_customer_address(customer_id, addr_id, request.address_fields())
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User or address not found")
    except ShopifyUserError as e:
        raise shopify_failure("Invalid address data provided", e)
    except ShopifyError as e:
        raise shopify_failure("Failed to update address", e)
    return {"success": True, "message": "Address updated successfully", "data": format_address(address)}


@router.delete("/{user_id}/address/{address_id}")
async def delete_address(
    user_id: str,
    address_id: str,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    addr_id = require_positive_id(address_id, ERROR_INVALID_ADDRESS_ID)
    try:
        await admin.delete_customer_address(customer_id, addr_id)
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User or address not found")
    except ShopifyUserError as e:
        # Shopify refuses to delete the default address
        raise shopify_failure("Cannot delete the default address", e)
    except ShopifyError as e:
        raise shopify_failure("Failed to delete address", e)
    return {"success": True, "message": "Address deleted successfully"}


@router.put("/{user_id}/address/{address_id}/default")
async def set_default_address(
    user_id: str,
    address_id: str,
    current_user: dict = Depends(get_current_user),
    admin: ShopifyAdminClient = Depends(get_admin_client),
):
    customer_id = require_positive_id(user_id, ERROR_INVALID_USER_ID)
    addr_id = require_positive_id(address_id, ERROR_INVALID_ADDRESS_ID)
    try:
        address = await admin.set_default_address(customer_id, addr_id)
    except ShopifyNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User or address not found")
    except ShopifyError as e:
        raise shopify_failure("Failed to set default address", e)
    return {"success": True, "message": "Default address updated successfully", "data": format_address(address)}
