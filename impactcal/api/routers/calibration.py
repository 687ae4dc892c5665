"""
Calibration API Endpoints.

POST   /api/v1/calibration/runs                 — trigger a calibration run
GET    /api/v1/calibration/runs                 — list runs (newest first)
GET    /api/v1/calibration/runs/{run_id}        — one run
GET    /api/v1/calibration/runs/{run_id}/cells  — cells of a run, bucket order
DELETE /api/v1/calibration/runs/{run_id}        — delete a run with its cells/suggestions
GET    /api/v1/calibration/stats                — per-tenant run statistics
POST   /api/v1/calibration/validations          — record validation samples
POST   /api/v1/calibration/validations/evaluate — grade pending samples of a period
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.api.deps import get_db, get_scoped_tenant_id, get_tenant_id, get_user_id
from impactcal.auth.rbac import Permission, check_permission, resolve_tenant
from impactcal.calibration.orchestrator import CalibrationOrchestrator
from impactcal.calibration.schemas import (
    CalibrationCellOut,
    CalibrationRunListResponse,
    CalibrationRunOut,
    CalibrationRunRequest,
    CalibrationStats,
    ValidationBatchRequest,
    ValidationBatchResponse,
    ValidationEvaluateRequest,
    ValidationEvaluateResponse,
)
from impactcal.calibration.store import CalibrationStore
from impactcal.calibration.types import OverallStatus
from impactcal.calibration.validations import ValidationRecorder
from impactcal.db import queries

router = APIRouter(prefix="/api/v1/calibration", tags=["calibration"])

_recorder = ValidationRecorder()


@router.post("/runs")
async def trigger_calibration_run(
    body: CalibrationRunRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    caller_tenant_id: uuid.UUID = Depends(get_tenant_id),
    user_id: str = Depends(get_user_id),
):
    """
    Run the calibration engine for a tenant and model version.

    Returns run metrics and, when the tenant has active weights, a draft
    weight suggestion. Nothing is activated here.
    """
    check_permission(request, Permission.CALIBRATION_RUN)
    tenant_id = resolve_tenant(request, caller_tenant_id, body.tenant_id)

    orchestrator = CalibrationOrchestrator(CalibrationStore(db))
    result = await orchestrator.run(
        tenant_id=tenant_id,
        model_version=body.model_version,
        period_start=body.period_start,
        period_end=body.period_end,
        run_label=body.run_label,
        description=body.description,
        created_by=user_id,
    )
    request.state.calibration_run_id = str(result.calibration_run_id)
    return result.to_dict()


@router.get("/runs", response_model=CalibrationRunListResponse)
async def list_calibration_runs(
    request: Request,
    model_version: Optional[int] = Query(default=None, ge=1),
    overall_status: Optional[OverallStatus] = Query(default=None),
    period_start: Optional[date] = Query(default=None),
    period_end: Optional[date] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    runs, total = await queries.list_runs(
        db,
        tenant_id,
        model_version=model_version,
        overall_status=overall_status,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
        offset=offset,
    )
    return CalibrationRunListResponse(
        runs=[CalibrationRunOut.model_validate(r) for r in runs],
        total=total,
    )


@router.get("/runs/{run_id}", response_model=CalibrationRunOut)
async def get_calibration_run(
    run_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    return CalibrationRunOut.model_validate(await queries.get_run(db, tenant_id, run_id))


@router.get("/runs/{run_id}/cells", response_model=list[CalibrationCellOut])
async def list_calibration_cells(
    run_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    cells = await queries.list_cells(db, tenant_id, run_id)
    return [CalibrationCellOut.model_validate(c) for c in cells]


@router.delete("/runs/{run_id}", status_code=204)
async def delete_calibration_run(
    run_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_RUN)
    await queries.delete_run(db, tenant_id, run_id)
    await db.commit()
    return Response(status_code=204)


@router.get("/stats", response_model=CalibrationStats)
async def calibration_stats(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_scoped_tenant_id),
):
    check_permission(request, Permission.CALIBRATION_READ)
    return CalibrationStats.model_validate(await queries.calibration_stats(db, tenant_id))


@router.post("/validations", response_model=ValidationBatchResponse, status_code=201)
async def record_validations(
    body: ValidationBatchRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    caller_tenant_id: uuid.UUID = Depends(get_tenant_id),
):
    """Record paired predicted/actual scores produced by the validation process."""
    check_permission(request, Permission.VALIDATIONS_WRITE)
    tenant_id = resolve_tenant(request, caller_tenant_id, body.tenant_id) or caller_tenant_id

    inserted = await _recorder.record(db, tenant_id, body.samples)
    await db.commit()
    return ValidationBatchResponse(tenant_id=tenant_id, inserted=inserted)


@router.post("/validations/evaluate", response_model=ValidationEvaluateResponse)
async def evaluate_validations(
    body: ValidationEvaluateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    caller_tenant_id: uuid.UUID = Depends(get_tenant_id),
):
    """Grade the pending validation samples of one period by their gap."""
    check_permission(request, Permission.VALIDATIONS_WRITE)
    tenant_id = resolve_tenant(request, caller_tenant_id, body.tenant_id) or caller_tenant_id

    evaluation = await _recorder.evaluate(db, tenant_id, body.period_year, body.period_month)
    await db.commit()
    return ValidationEvaluateResponse(
        tenant_id=tenant_id,
        period_year=body.period_year,
        period_month=body.period_month,
        processed=evaluation.processed,
        updated=evaluation.updated,
        skipped=evaluation.skipped,
    )
