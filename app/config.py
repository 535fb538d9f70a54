"""
Settings for the storefront BFF, read from the environment (.env in development)
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

# Storefront dev servers (Next.js, Vite)
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


class Settings:
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV in ("PROD", "PRODUCTION")
    IS_DEVELOPMENT = not IS_PRODUCTION
    # Render, Heroku and Railway all set one of these
    IS_CLOUD = any(os.getenv(name) for name in ("RENDER", "DYNO", "RAILWAY_ENVIRONMENT"))

    HOST = os.getenv("HOST", "0.0.0.0" if IS_CLOUD else "127.0.0.1")
    PORT = int(os.getenv("PORT", 3000))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG")

    # Shopify store (Storefront GraphQL + Admin REST share the same domain)
    SHOPIFY_STORE_URL = os.getenv("SHOPIFY_STORE_URL", "")
    # SHOPIFY_ACCESS_TOKEN is the older name for the storefront token
    SHOPIFY_STOREFRONT_ACCESS_TOKEN = os.getenv(
        "SHOPIFY_STOREFRONT_ACCESS_TOKEN", os.getenv("SHOPIFY_ACCESS_TOKEN", "")
    )
    SHOPIFY_ADMIN_ACCESS_TOKEN = os.getenv("SHOPIFY_ADMIN_ACCESS_TOKEN", "")
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-01")
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

    # Customer metafield that points at the user's durable cart
    CART_METAFIELD_NAMESPACE = os.getenv("CART_METAFIELD_NAMESPACE", "custom")
    CART_METAFIELD_KEY = os.getenv("CART_METAFIELD_KEY", "cart_id")

    # Authentication
    JWT_SECRET = os.getenv("JWT_SECRET", "supersecret_fallback_key_change_in_production")
    AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))

    # Client credentials exchanged at /auth/token
    CLIENT_ID = os.getenv("CLIENT_ID", "")
    CLIENT_SECRET = os.getenv("CLIENT_SECRET", "")

    # Issued tokens are reused for half their lifetime
    TOKEN_CACHE_TTL_HOURS = int(os.getenv("TOKEN_CACHE_TTL_HOURS", 12))
    TOKEN_CACHE_MAX_SIZE = int(os.getenv("TOKEN_CACHE_MAX_SIZE", 1024))
    TOKEN_CACHE_CLEANUP_INTERVAL_SEC = int(os.getenv("TOKEN_CACHE_CLEANUP_INTERVAL_SEC", 3600))

    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Comma-separated ALLOWED_ORIGINS, plus the local storefront dev servers outside production"""
        origins = list(DEV_ORIGINS) if self.IS_DEVELOPMENT else []
        for origin in os.getenv("ALLOWED_ORIGINS", "").split(","):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def CORS_ORIGIN_REGEX(self) -> Optional[str]:
        regex = os.getenv("CORS_ORIGIN_REGEX", "")
        if regex:
            return regex
        if self.IS_DEVELOPMENT:
            return r"http://(localhost|127\.0\.0\.1):\d+"
        return None

    def __str__(self):
        return f"Settings(ENV={self.ENV}, store={self.SHOPIFY_STORE_URL or '-'}, api={self.SHOPIFY_API_VERSION})"


settings = Settings()
