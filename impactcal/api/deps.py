"""
FastAPI dependencies for API routes.

Re-exports auth dependencies and adds the tenant scope used by read
endpoints (a SUPER_ADMIN may inspect another tenant via ?tenant_id=).
"""

import uuid
from typing import Optional

from fastapi import Depends, Query, Request

from impactcal.auth.dependencies import get_db, get_tenant_id, get_user_id
from impactcal.auth.rbac import resolve_tenant


def get_scoped_tenant_id(
    request: Request,
    tenant_id: Optional[uuid.UUID] = Query(default=None),
    caller_tenant_id: uuid.UUID = Depends(get_tenant_id),
) -> uuid.UUID:
    return resolve_tenant(request, caller_tenant_id, tenant_id) or caller_tenant_id


__all__ = ["get_db", "get_tenant_id", "get_user_id", "get_scoped_tenant_id"]
