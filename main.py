"""
Storefront BFF - FastAPI Backend
Proxies cart, user and client-auth operations to Shopify's Storefront and Admin APIs.
"""
import asyncio
import logging
import re

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.services.cart_service import CartService
from app.services.shopify_admin import ShopifyAdminClient
from app.services.storefront import StorefrontClient
from app.services.token_manager import TokenCache, TokenManager
from routes.api import register_routes

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront BFF API",
    description="Cart, user and auth proxy for the Shopify storefront",
    version="1.0.0",
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
)

logger.info("🚀 Starting Storefront BFF API")
logger.info(f"📊 Environment: {settings.ENV}")
logger.info(f"🌐 Production: {settings.IS_PRODUCTION}")
logger.info(f"🔗 Host: {settings.HOST}:{settings.PORT}")

# Startup config validation (warn only)
if settings.IS_PRODUCTION and settings.JWT_SECRET.strip() in ("", "supersecret_fallback_key_change_in_production"):
    logger.warning("⚠️ JWT_SECRET is default or empty in production. Set a strong JWT_SECRET in environment.")
if not settings.SHOPIFY_STORE_URL.strip():
    logger.warning("⚠️ SHOPIFY_STORE_URL is not set. Shopify calls will fail.")
if not settings.SHOPIFY_STOREFRONT_ACCESS_TOKEN or not settings.SHOPIFY_ADMIN_ACCESS_TOKEN:
    logger.warning("⚠️ Shopify storefront/admin access token missing. Cart and user routes will fail.")

# Shopify clients and services, shared by every request (see app/dependencies.py)
app.state.storefront_client = StorefrontClient(
    settings.SHOPIFY_STORE_URL,
    settings.SHOPIFY_STOREFRONT_ACCESS_TOKEN,
    api_version=settings.SHOPIFY_API_VERSION,
    timeout=settings.HTTP_TIMEOUT_SECONDS,
)
app.state.admin_client = ShopifyAdminClient(
    settings.SHOPIFY_STORE_URL,
    settings.SHOPIFY_ADMIN_ACCESS_TOKEN,
    api_version=settings.SHOPIFY_API_VERSION,
    timeout=settings.HTTP_TIMEOUT_SECONDS,
)
app.state.cart_service = CartService(
    app.state.storefront_client,
    app.state.admin_client,
    metafield_namespace=settings.CART_METAFIELD_NAMESPACE,
    metafield_key=settings.CART_METAFIELD_KEY,
)
app.state.token_manager = TokenManager(
    settings.JWT_SECRET,
    TokenCache(ttl_seconds=settings.TOKEN_CACHE_TTL_HOURS * 3600, max_size=settings.TOKEN_CACHE_MAX_SIZE),
    algorithm=settings.AUTH_ALGORITHM,
    token_expire_hours=settings.ACCESS_TOKEN_EXPIRE_HOURS,
)


ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]


def get_cors_headers(request: Request) -> dict:
    """Exception responses skip CORSMiddleware, so the handlers echo an allowed origin themselves"""
    origin = request.headers.get("origin", "")
    allowed = settings.ALLOWED_ORIGINS
    regex = settings.CORS_ORIGIN_REGEX
    if origin and (origin in allowed or (regex and re.fullmatch(regex, origin))):
        cors_origin = origin
    else:
        cors_origin = allowed[0] if allowed else "*"
    return {
        "Access-Control-Allow-Origin": cors_origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
        "Access-Control-Allow-Headers": "*",
    }


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    logger.warning(f"Validation error: {errors}")
    message = errors[0]["msg"].removeprefix("Value error, ") if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message, "errors": errors},
        headers=get_cors_headers(request),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Every HTTPException leaves as the {success: false, message, ...} envelope"""
    headers = get_cors_headers(request)
    if exc.headers:
        headers.update(exc.headers)
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Internal server error",
            "error": str(exc) if settings.IS_DEVELOPMENT else "An error occurred",
        },
        headers=get_cors_headers(request),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=ALLOWED_METHODS,
    allow_headers=["*"],
)
logger.info(f"✅ CORS configured for {len(settings.ALLOWED_ORIGINS)} origin(s)")

register_routes(app, settings)


@app.get("/")
async def root():
    return {
        "success": True,
        "message": "Storefront BFF API",
        "version": "1.0.0",
        "docs": "/docs" if settings.IS_DEVELOPMENT else None,
        "health": "/health",
    }


@app.get("/health")
async def health():
    """Liveness. Does not call Shopify."""
    return {
        "status": "ok",
        "service": "api",
        "environment": settings.ENV,
        "production": settings.IS_PRODUCTION,
        "activeTokens": app.state.token_manager.active_count(),
    }


async def _token_cache_cleanup_loop() -> None:
    """Background: drop expired client tokens every TOKEN_CACHE_CLEANUP_INTERVAL_SEC."""
    interval = settings.TOKEN_CACHE_CLEANUP_INTERVAL_SEC
    logger.info("Token cache cleanup started (interval=%ss)", interval)
    while True:
        await asyncio.sleep(interval)
        try:
            removed = app.state.token_manager.cache.purge_expired()
            if removed:
                logger.info("Token cache cleanup: removed=%s", removed)
        except Exception as e:
            logger.exception("Token cache cleanup failed: %s", e)


@app.on_event("startup")
async def startup_token_cache_cleanup() -> None:
    app.state.token_cleanup_task = asyncio.create_task(_token_cache_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_clients() -> None:
    task = getattr(app.state, "token_cleanup_task", None)
    if task:
        task.cancel()
    await app.state.storefront_client.aclose()
    await app.state.admin_client.aclose()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,
        log_level=settings.LOG_LEVEL.lower()
    )
