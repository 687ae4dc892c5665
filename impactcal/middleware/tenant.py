"""
Tenant Isolation Middleware.

Authenticates every non-public request with a JWT Bearer token and places
the caller's tenant, user and role on request.state. Nothing downstream
reads the tenant from anywhere else.
"""

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from impactcal.auth.jwt import TokenError, decode_token

logger = structlog.get_logger(__name__)

# Paths that bypass authentication
PUBLIC_PATHS = frozenset({
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
})


class TenantMiddleware(BaseHTTPMiddleware):
    """Sets request.state.tenant_id / user_id / user_role from the JWT."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        # CORS preflight is answered by CORSMiddleware
        if request.method == "OPTIONS":
            return await call_next(request)

        if path in PUBLIC_PATHS or path.rstrip("/") in PUBLIC_PATHS:
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            return JSONResponse(status_code=401, content={"detail": "Missing authentication token"})

        try:
            payload = decode_token(token)
        except TokenError as e:
            logger.warning("tenant_auth_failed", error=str(e), path=path)
            return JSONResponse(status_code=401, content={"detail": "Invalid or expired token"})

        request.state.tenant_id = payload["tenant_id"]
        request.state.user_id = payload["user_id"]
        request.state.user_email = payload.get("email", "")
        request.state.user_role = payload.get("role", "viewer")

        structlog.contextvars.bind_contextvars(
            tenant_id=str(payload["tenant_id"]),
            user_id=str(payload["user_id"]),
        )
        return await call_next(request)

    def _extract_token(self, request: Request) -> str | None:
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            return auth[7:]
        return None
