"""
FastAPI dependencies that hand out the app-wide service objects built in main.py.
Tests swap them through app.dependency_overrides.
"""
from fastapi import Request

from app.services.cart_service import CartService
from app.services.shopify_admin import ShopifyAdminClient
from app.services.token_manager import TokenManager


def get_cart_service(request: Request) -> CartService:
    return request.app.state.cart_service


def get_admin_client(request: Request) -> ShopifyAdminClient:
    return request.app.state.admin_client


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager
