"""
Central route registration. Paths are the storefront's public contract (/cart, /user, /auth),
so routers are mounted without an /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import auth, cart, users

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(cart.router, prefix="/cart", tags=["cart"])
    app.include_router(users.router, prefix="/user", tags=["user"])
    logger.info("Routes registered (env=%s)", settings.ENV)
