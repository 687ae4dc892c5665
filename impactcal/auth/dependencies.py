"""
FastAPI dependencies for authentication and tenant context.

Tenant isolation is enforced by explicit tenant_id filters in every query;
the tenant comes from the JWT only (set on request.state by TenantMiddleware).
"""

import uuid
from typing import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.db.engine import get_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async DB session; commit on success, roll back on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_tenant_id(request: Request) -> uuid.UUID:
    """Extract tenant_id from request state (set by TenantMiddleware)."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(status_code=401, detail="Missing tenant context")
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid tenant context")


def get_user_id(request: Request) -> str:
    """Extract user_id from request state (set by TenantMiddleware)."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user context")
    return str(user_id)
