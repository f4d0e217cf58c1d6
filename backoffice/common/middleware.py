"""
Middleware for the shop context of POS terminals
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging

logger = logging.getLogger(__name__)


class ShopContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts shop_id from X-Shop-ID header
    and sets it on request.state; the catalog client forwards it
    """

    # Paths that don't require shop context
    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == "/" or any(path.startswith(exempt) for exempt in self.EXEMPT_PATHS):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        shop_id = (request.headers.get("X-Shop-ID") or "").strip()

        if not shop_id:
            return Response(
                content='{"detail":"Missing X-Shop-ID header"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        request.state.shop_id = shop_id
        logger.debug(f"Request to {path} with shop_id: {shop_id}")

        response = await call_next(request)
        response.headers["X-Shop-ID"] = shop_id

        return response
