"""
Shared bits for controllers: id parsing and Shopify error -> HTTP mapping.
"""
import logging
from typing import Any

from fastapi import HTTPException, status

from app.errors import ShopifyError, ShopifyUserError
from app.http.requests.schemas import parse_positive_int

logger = logging.getLogger(__name__)


def require_positive_id(value: Any, message: str) -> int:
    parsed = parse_positive_int(value)
    if parsed is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    return parsed


def shopify_failure(message: str, exc: ShopifyError) -> HTTPException:
    """
    HTTPException carrying the route's own message plus the upstream error text.
    Status follows the error type (422 user error, 404 not found, 500 otherwise).
    """
    logger.error("%s: %s", message, exc.message)
    detail = {"message": message, "error": exc.message}
    if isinstance(exc, ShopifyUserError) and exc.errors is not None:
        detail["errors"] = exc.errors
    return HTTPException(status_code=exc.status_code, detail=detail)
