"""
Authentication routes: client credentials -> bearer token
"""
import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.config import settings
from app.dependencies import get_token_manager
from app.http.requests.schemas import LogoutRequest, TokenRequest
from app.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _credentials_match(client_id: str, client_secret: str) -> bool:
    if not settings.CLIENT_ID or not settings.CLIENT_SECRET:
        logger.warning("CLIENT_ID/CLIENT_SECRET not configured; rejecting token request")
        return False
    return hmac.compare_digest(client_id.encode(), settings.CLIENT_ID.encode()) and hmac.compare_digest(
        client_secret.encode(), settings.CLIENT_SECRET.encode()
    )


@router.post("/token")
async def issue_token(request: TokenRequest, token_manager: TokenManager = Depends(get_token_manager)):
    """Generate a token, or hand back the still-valid cached one"""
    if not _credentials_match(request.client_id, request.client_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid client credentials")

    token_data = token_manager.get_token(request.client_id)
    return {
        "success": True,
        "token": token_data["token"],
        "expiresIn": token_data["expiresIn"],
        "cached": token_data["cached"],
        "message": "Returning existing valid token" if token_data["cached"] else "New token generated",
    }


@router.post("/logout")
async def logout(request: LogoutRequest, token_manager: TokenManager = Depends(get_token_manager)):
    """Drop the cached token so the next /token call mints a new one"""
    if not token_manager.invalidate(request.client_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active token found for this client")
    return {"success": True, "message": "Token invalidated successfully"}
