"""
RBAC and JWT Tests.

Tests every role × permission combination and the cross-tenant rule.
"""

import uuid
from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from impactcal.auth.jwt import TokenError, create_access_token, decode_token
from impactcal.auth.rbac import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    check_permission,
    has_permission,
    resolve_tenant,
)


def _request(role: str):
    """Minimal stand-in for a Starlette request after TenantMiddleware."""
    return SimpleNamespace(
        state=SimpleNamespace(user_role=role, user_id="u-1"),
        url=SimpleNamespace(path="/api/v1/calibration/runs"),
    )


class TestRoleHierarchy:
    def test_role_ordering(self):
        assert Role.VIEWER < Role.ANALYST < Role.MANAGER < Role.ADMIN < Role.SUPER_ADMIN

    def test_from_str(self):
        assert Role.from_str("super_admin") == Role.SUPER_ADMIN
        assert Role.from_str("ADMIN") == Role.ADMIN

    @pytest.mark.parametrize("value", ["root", "", None, "owner"])
    def test_unknown_defaults_to_viewer(self, value):
        assert Role.from_str(value) == Role.VIEWER


class TestPermissionMapping:
    @pytest.mark.parametrize(
        "role,permission,allowed",
        [
            (Role.VIEWER, Permission.CALIBRATION_READ, True),
            (Role.VIEWER, Permission.VALIDATIONS_WRITE, False),
            (Role.ANALYST, Permission.VALIDATIONS_WRITE, True),
            (Role.MANAGER, Permission.CALIBRATION_RUN, False),
            (Role.ADMIN, Permission.CALIBRATION_RUN, True),
            (Role.ADMIN, Permission.WEIGHTS_WRITE, True),
            (Role.ADMIN, Permission.SUGGESTIONS_REVIEW, True),
        ],
    )
    def test_matrix(self, role, permission, allowed):
        assert has_permission(role, permission) is allowed

    def test_permissions_grow_with_role(self):
        roles = sorted(Role)
        for lower, higher in zip(roles, roles[1:]):
            assert ROLE_PERMISSIONS[lower] <= ROLE_PERMISSIONS[higher]

    def test_super_admin_has_everything(self):
        assert ROLE_PERMISSIONS[Role.SUPER_ADMIN] == frozenset(Permission)


class TestChecks:
    def test_check_permission_denied(self):
        with pytest.raises(HTTPException) as exc:
            check_permission(_request("analyst"), Permission.CALIBRATION_RUN)
        assert exc.value.status_code == 403
        assert exc.value.detail["your_role"] == "analyst"


class TestResolveTenant:
    def test_own_tenant_and_missing_pass_through(self):
        own = uuid.uuid4()
        assert resolve_tenant(_request("admin"), own, own) == own
        assert resolve_tenant(_request("admin"), own, None) is None

    def test_cross_tenant_needs_super_admin(self):
        own, other = uuid.uuid4(), uuid.uuid4()
        with pytest.raises(HTTPException) as exc:
            resolve_tenant(_request("admin"), own, other)
        assert exc.value.status_code == 403
        assert resolve_tenant(_request("super_admin"), own, other) == other


class TestTokens:
    def test_round_trip_claims(self):
        tenant_id = uuid.uuid4()
        payload = decode_token(create_access_token("u-1", str(tenant_id), "a@test.com", "admin"))
        assert payload["tenant_id"] == str(tenant_id)
        assert payload["role"] == "admin"

    def test_expired_token(self):
        token = create_access_token("u-1", "t-1", "a@test.com", expires_delta=timedelta(seconds=-5))
        with pytest.raises(TokenError):
            decode_token(token)

    def test_garbage_token(self):
        with pytest.raises(TokenError):
            decode_token("definitely.not.valid")

    def test_non_uuid_tenant_rejected(self):
        with pytest.raises(TokenError):
            decode_token(create_access_token("u-1", "tenant-one", "a@test.com"))

    def test_tenant_claim_canonicalized(self):
        tenant_id = uuid.uuid4()
        payload = decode_token(create_access_token("u-1", str(tenant_id).upper(), "a@test.com"))
        assert payload["tenant_id"] == str(tenant_id)
