"""
Role-Based Access Control.

Defines:
- Role hierarchy (VIEWER < ANALYST < MANAGER < ADMIN < SUPER_ADMIN)
- Calibration permissions per role
- check_permission / resolve_tenant for endpoint-level checks
"""

import uuid
from enum import Enum, IntEnum
from typing import Optional

import structlog
from fastapi import HTTPException, Request

logger = structlog.get_logger(__name__)


class Role(IntEnum):
    """Ordered role hierarchy — higher value = more permissions."""

    VIEWER = 10
    ANALYST = 20
    MANAGER = 30
    ADMIN = 40
    SUPER_ADMIN = 50

    @classmethod
    def from_str(cls, value: Optional[str]) -> "Role":
        """Convert string role name to Role enum, case-insensitive."""
        mapping = {
            "viewer": cls.VIEWER,
            "analyst": cls.ANALYST,
            "manager": cls.MANAGER,
            "admin": cls.ADMIN,
            "super_admin": cls.SUPER_ADMIN,
        }
        return mapping.get((value or "").lower(), cls.VIEWER)


class Permission(str, Enum):
    CALIBRATION_READ = "calibration:read"
    VALIDATIONS_WRITE = "validations:write"
    CALIBRATION_RUN = "calibration:run"
    WEIGHTS_WRITE = "weights:write"
    SUGGESTIONS_REVIEW = "suggestions:review"


# ── Role → Permission Mapping ─────────────────────────────────────────────

_VIEWER_PERMS = frozenset({
    Permission.CALIBRATION_READ,
})

_ANALYST_PERMS = _VIEWER_PERMS | frozenset({
    Permission.VALIDATIONS_WRITE,
})

_MANAGER_PERMS = _ANALYST_PERMS

_ADMIN_PERMS = _MANAGER_PERMS | frozenset({
    Permission.CALIBRATION_RUN,
    Permission.WEIGHTS_WRITE,
    Permission.SUGGESTIONS_REVIEW,
})

_SUPER_ADMIN_PERMS = frozenset(Permission)

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.VIEWER: _VIEWER_PERMS,
    Role.ANALYST: _ANALYST_PERMS,
    Role.MANAGER: _MANAGER_PERMS,
    Role.ADMIN: _ADMIN_PERMS,
    Role.SUPER_ADMIN: _SUPER_ADMIN_PERMS,
}


def _extract_role_from_request(request: Request) -> Role:
    """Extract Role from request.state (set by TenantMiddleware)."""
    return Role.from_str(getattr(request.state, "user_role", "viewer"))


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def check_permission(request: Request, permission: Permission) -> None:
    """
    Check that the current request has the required permission.

    Raises HTTPException 403 if denied.
    """
    role = _extract_role_from_request(request)
    if not has_permission(role, permission):
        logger.warning(
            "permission_denied",
            user_id=getattr(request.state, "user_id", "unknown"),
            role=role.name,
            required_permission=permission.value,
            path=request.url.path,
        )
        raise HTTPException(
            status_code=403,
            detail={
                "error": "insufficient_permissions",
                "required": permission.value,
                "your_role": role.name.lower(),
            },
        )


def resolve_tenant(
    request: Request,
    caller_tenant_id: uuid.UUID,
    requested_tenant_id: Optional[uuid.UUID],
) -> Optional[uuid.UUID]:
    """
    Decide which tenant a request body may address.

    A missing body tenant is passed through unchanged; only a SUPER_ADMIN may
    address a tenant other than their own. Raises HTTPException 403 otherwise.
    """
    if requested_tenant_id is None or requested_tenant_id == caller_tenant_id:
        return requested_tenant_id

    role = _extract_role_from_request(request)
    if role < Role.SUPER_ADMIN:
        logger.warning(
            "cross_tenant_denied",
            user_id=getattr(request.state, "user_id", "unknown"),
            caller_tenant_id=str(caller_tenant_id),
            requested_tenant_id=str(requested_tenant_id),
        )
        raise HTTPException(
            status_code=403,
            detail={"error": "tenant_mismatch", "your_role": role.name.lower()},
        )
    return requested_tenant_id
