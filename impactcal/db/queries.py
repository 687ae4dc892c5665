"""
Read and housekeeping queries for calibration history.

Used by the API routers; the calibration engine itself goes through
CalibrationStore. Every function takes an explicit tenant_id and never
returns another tenant's rows.
"""

import uuid
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.calibration.errors import NotFoundError
from impactcal.calibration.types import ACTUAL_ORDER, PREDICTED_ORDER, OverallStatus
from impactcal.db.models import CalibrationCell, CalibrationRun, ImpactWeight, WeightSuggestion


# ── Runs ─────────────────────────────────────────────────────────────────


async def list_runs(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    model_version: Optional[int] = None,
    overall_status: Optional[OverallStatus] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[Sequence[CalibrationRun], int]:
    """Runs of a tenant, newest first, plus the unpaginated total."""
    conditions = [CalibrationRun.tenant_id == tenant_id]
    if model_version is not None:
        conditions.append(CalibrationRun.model_version == model_version)
    if overall_status is not None:
        conditions.append(CalibrationRun.overall_status == overall_status.value)
    if period_start is not None:
        conditions.append(CalibrationRun.period_start >= period_start)
    if period_end is not None:
        conditions.append(CalibrationRun.period_end <= period_end)

    total = await session.scalar(
        select(func.count()).select_from(CalibrationRun).where(*conditions)
    )
    result = await session.execute(
        select(CalibrationRun)
        .where(*conditions)
        .order_by(CalibrationRun.created_at.desc(), CalibrationRun.id)
        .limit(limit)
        .offset(offset)
    )
    return result.scalars().all(), total or 0


async def get_run(session: AsyncSession, tenant_id: uuid.UUID, run_id: uuid.UUID) -> CalibrationRun:
    result = await session.execute(
        select(CalibrationRun).where(
            CalibrationRun.id == run_id,
            CalibrationRun.tenant_id == tenant_id,
        )
    )
    run = result.scalar_one_or_none()
    if run is None:
        raise NotFoundError("calibration run", str(run_id))
    return run


async def list_cells(
    session: AsyncSession, tenant_id: uuid.UUID, run_id: uuid.UUID
) -> list[CalibrationCell]:
    """Cells of a run, ordered by predicted bucket then actual bucket."""
    await get_run(session, tenant_id, run_id)
    result = await session.execute(
        select(CalibrationCell).where(
            CalibrationCell.calibration_run_id == run_id,
            CalibrationCell.tenant_id == tenant_id,
        )
    )
    cells = list(result.scalars().all())
    cells.sort(key=lambda c: (
        PREDICTED_ORDER.get(c.predicted_bucket, len(PREDICTED_ORDER)),
        ACTUAL_ORDER.get(c.actual_bucket, len(ACTUAL_ORDER)),
    ))
    return cells


async def delete_run(session: AsyncSession, tenant_id: uuid.UUID, run_id: uuid.UUID) -> None:
    """Delete a run together with its cells and suggestions."""
    run = await get_run(session, tenant_id, run_id)
    await session.delete(run)
    await session.flush()


async def calibration_stats(session: AsyncSession, tenant_id: uuid.UUID) -> dict:
    """Totals over all runs of a tenant. Averages are 0 when there are none."""
    result = await session.execute(
        select(
            func.count(CalibrationRun.id),
            func.avg(CalibrationRun.sample_size),
            func.avg(CalibrationRun.avg_validation_gap),
            func.sum(case((CalibrationRun.overall_status == OverallStatus.GOOD.value, 1), else_=0)),
            func.sum(case((CalibrationRun.overall_status == OverallStatus.NEEDS_TUNING.value, 1), else_=0)),
            func.sum(case((CalibrationRun.overall_status == OverallStatus.BAD.value, 1), else_=0)),
        ).where(CalibrationRun.tenant_id == tenant_id)
    )
    total, avg_size, avg_gap, good, tuning, bad = result.one()
    return {
        "total_runs": total or 0,
        "avg_sample_size": float(avg_size or 0.0),
        "avg_gap": float(avg_gap or 0.0),
        "status_breakdown": {
            "good": int(good or 0),
            "needs_tuning": int(tuning or 0),
            "bad": int(bad or 0),
        },
    }


# ── Weights ──────────────────────────────────────────────────────────────


async def get_active_weight(session: AsyncSession, tenant_id: uuid.UUID) -> Optional[ImpactWeight]:
    result = await session.execute(
        select(ImpactWeight)
        .where(ImpactWeight.tenant_id == tenant_id, ImpactWeight.is_active.is_(True))
        .order_by(ImpactWeight.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_weights(session: AsyncSession, tenant_id: uuid.UUID) -> Sequence[ImpactWeight]:
    result = await session.execute(
        select(ImpactWeight)
        .where(ImpactWeight.tenant_id == tenant_id)
        .order_by(ImpactWeight.version.desc())
    )
    return result.scalars().all()


async def max_weight_version(session: AsyncSession, tenant_id: uuid.UUID) -> int:
    """Highest weight version of a tenant, 0 if it has none."""
    version = await session.scalar(
        select(func.max(ImpactWeight.version)).where(ImpactWeight.tenant_id == tenant_id)
    )
    return version or 0


# ── Suggestions ──────────────────────────────────────────────────────────


async def list_suggestions(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    run_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[WeightSuggestion]:
    query = select(WeightSuggestion).where(WeightSuggestion.tenant_id == tenant_id)
    if run_id is not None:
        query = query.where(WeightSuggestion.calibration_run_id == run_id)
    if status is not None:
        query = query.where(WeightSuggestion.status == status)
    result = await session.execute(
        query.order_by(WeightSuggestion.created_at.desc(), WeightSuggestion.id)
        .limit(limit)
        .offset(offset)
    )
    return result.scalars().all()


async def get_suggestion(
    session: AsyncSession, tenant_id: uuid.UUID, suggestion_id: uuid.UUID
) -> WeightSuggestion:
    result = await session.execute(
        select(WeightSuggestion).where(
            WeightSuggestion.id == suggestion_id,
            WeightSuggestion.tenant_id == tenant_id,
        )
    )
    suggestion = result.scalar_one_or_none()
    if suggestion is None:
        raise NotFoundError("weight suggestion", str(suggestion_id))
    return suggestion
