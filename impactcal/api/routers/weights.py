"""
Weight Governance API Endpoints.

GET  /api/v1/calibration/weights                          — all weight versions
GET  /api/v1/calibration/weights/active                   — the active vector
POST /api/v1/calibration/weights                          — create + activate a version
GET  /api/v1/calibration/suggestions                      — list suggestions
GET  /api/v1/calibration/suggestions/{suggestion_id}      — one suggestion
POST /api/v1/calibration/suggestions/{suggestion_id}/accept
POST /api/v1/calibration/suggestions/{suggestion_id}/reject
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.api.deps import get_db, get_scoped_tenant_id, get_tenant_id, get_user_id
from impactcal.auth.rbac import Permission, check_permission, resolve_tenant
from impactcal.calibration.errors import NotFoundError
from impactcal.calibration.review import WeightGovernance
from impactcal.calibration.schemas import (
    SuggestionAcceptResponse,
    WeightSuggestionOut,
    WeightVectorCreate,
    WeightVectorOut,
)
from impactcal.calibration.types import SuggestionStatus, WeightVector
from impactcal.db import queries

router = APIRouter(prefix="/api/v1/calibration", tags=["weights"])

_governance = WeightGovernance()


# ── Weight vectors ───────────────────────────────────────────────────────


@router.get("/weights", response_model=list[WeightVectorOut])
async def list_weight_versions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    return [WeightVectorOut.model_validate(w) for w in await queries.list_weights(db, tenant_id)]


@router.get("/weights/active", response_model=WeightVectorOut)
async def get_active_weights(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    weight = await queries.get_active_weight(db, tenant_id)
    if weight is None:
        raise NotFoundError("active weight vector", str(tenant_id))
    return WeightVectorOut.model_validate(weight)


@router.post("/weights", response_model=WeightVectorOut, status_code=201)
async def create_weight_version(
    body: WeightVectorCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    caller_tenant_id: uuid.UUID = Depends(get_tenant_id),
    user_id: str = Depends(get_user_id),
):
    """Create the next weight version and make it the only active one."""
    check_permission(request, Permission.WEIGHTS_WRITE)
    tenant_id = resolve_tenant(request, caller_tenant_id, body.tenant_id) or caller_tenant_id

    weight = await _governance.create_weight_version(
        db,
        tenant_id,
        WeightVector(
            engagement=body.engagement,
            completion=body.completion,
            feedback_quality=body.feedback_quality,
            compliance_linkage=body.compliance_linkage,
        ),
        created_by=user_id,
    )
    await db.commit()
    return WeightVectorOut.model_validate(weight)


# ── Suggestions ──────────────────────────────────────────────────────────


@router.get("/suggestions", response_model=list[WeightSuggestionOut])
async def list_weight_suggestions(
    request: Request,
    calibration_run_id: Optional[uuid.UUID] = Query(default=None),
    status: Optional[SuggestionStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    suggestions = await queries.list_suggestions(
        db,
        tenant_id,
        run_id=calibration_run_id,
        status=status.value if status else None,
        limit=limit,
        offset=offset,
    )
    return [WeightSuggestionOut.model_validate(s) for s in suggestions]


@router.get("/suggestions/{suggestion_id}", response_model=WeightSuggestionOut)
async def get_weight_suggestion(
    suggestion_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    return WeightSuggestionOut.model_validate(
        await queries.get_suggestion(db, tenant_id, suggestion_id)
    )


@router.post("/suggestions/{suggestion_id}/accept", response_model=SuggestionAcceptResponse)
async def accept_weight_suggestion(
    suggestion_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
    user_id: str = Depends(get_user_id),
):
    """
    Accept a draft suggestion.

    Its vector becomes a new weight version (the suggested one) and the
    tenant's previously active vector is deactivated.
    """
    check_permission(request, Permission.SUGGESTIONS_REVIEW)
    suggestion, weight = await _governance.accept_suggestion(db, tenant_id, suggestion_id, reviewer=user_id)
    await db.commit()
    return SuggestionAcceptResponse(
        suggestion=WeightSuggestionOut.model_validate(suggestion),
        weight=WeightVectorOut.model_validate(weight),
    )


@router.post("/suggestions/{suggestion_id}/reject", response_model=WeightSuggestionOut)
async def reject_weight_suggestion(
    suggestion_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
    user_id: str = Depends(get_user_id),
):
    check_permission(request, Permission.SUGGESTIONS_REVIEW)
    suggestion = await _governance.reject_suggestion(db, tenant_id, suggestion_id, reviewer=user_id)
    await db.commit()
    return WeightSuggestionOut.model_validate(suggestion)
