"""
Bearer token verification for protected routes.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.dependencies import get_token_manager
from app.errors import ERROR_UNAUTHORIZED
from app.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token_manager: TokenManager = Depends(get_token_manager),
) -> dict:
    """
    Claims of the verified bearer token (clientId, authorized, optionally email).
    Tokens from /auth/token never carry an email; the email hint only comes from externally minted tokens.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ERROR_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = token_manager.decode_token(credentials.credentials)
    except JWTError as e:
        logger.debug("Rejected bearer token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ERROR_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims
