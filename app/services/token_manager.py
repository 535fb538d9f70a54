"""
Client token issuing and caching.
A client that presents valid credentials gets a 24h JWT; the same token is handed back
for the next 12h so repeated logins don't mint new tokens.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import jwt

logger = logging.getLogger(__name__)


class TokenCache:
    """In-memory map client_id -> (token, expires_at) with a TTL and a size cap (oldest evicted first)."""

    def __init__(self, ttl_seconds: float, max_size: int = 1024, clock: Callable[[], float] = time.time):
        if max_size < 1:
            raise ValueError("TokenCache max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        token, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return token

    def set(self, key: str, token: str) -> None:
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_size:
            self.purge_expired()
        while len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = (token, self._clock() + self.ttl_seconds)

    def pop(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
            logger.info("Token expired and removed for client: %s", key)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class TokenManager:
    def __init__(
        self,
        secret: str,
        cache: TokenCache,
        algorithm: str = "HS256",
        token_expire_hours: int = 24,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.token_expire_hours = token_expire_hours
        self.cache = cache

    @property
    def expires_in(self) -> str:
        return f"{int(self.cache.ttl_seconds // 3600)}h"

    def create_token(self, client_id: str) -> str:
        expire = datetime.now(timezone.utc) + timedelta(hours=self.token_expire_hours)
        return jwt.encode(
            {"clientId": client_id, "authorized": True, "exp": expire},
            self.secret,
            algorithm=self.algorithm,
        )

    def get_token(self, client_id: str) -> dict:
        """Cached token for the client if still valid, otherwise a freshly signed one."""
        cached = self.cache.get(client_id)
        if cached:
            logger.debug("Returning cached token for client: %s", client_id)
            return {"token": cached, "expiresIn": self.expires_in, "cached": True}

        token = self.create_token(client_id)
        self.cache.set(client_id, token)
        logger.info("New token generated and cached for client: %s", client_id)
        return {"token": token, "expiresIn": self.expires_in, "cached": False}

    def decode_token(self, token: str) -> dict:
        """Verified claims. Raises jose.JWTError on bad signature or expiry."""
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])

    def invalidate(self, client_id: str) -> bool:
        removed = self.cache.pop(client_id)
        if removed:
            logger.info("Token invalidated for client: %s", client_id)
        return removed

    def active_count(self) -> int:
        return len(self.cache)
