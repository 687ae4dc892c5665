"""
Calibration Store — the engine's only window onto persistence.

Reads:  validation samples, the tenant's active weight vector
Writes: calibration run, cells, weight suggestion

Every write is committed immediately. A run that fails half-way leaves
the rows written so far in place for audit; nothing is compensated.
Database errors are translated into UpstreamReadError / PersistenceError
with tenant and run context attached.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.calibration.bias import BiasReport
from impactcal.calibration.buckets import validate_score
from impactcal.calibration.cells import CellStats
from impactcal.calibration.errors import (
    InvalidScoreError,
    PersistenceError,
    UpstreamReadError,
)
from impactcal.calibration.summary import RunMetrics
from impactcal.calibration.types import (
    RunStage,
    SuggestionStatus,
    ValidationSample,
    WeightVector,
)
from impactcal.calibration.weights import WeightCorrection
from impactcal.db.models import (
    CalibrationCell,
    CalibrationRun,
    ImpactValidation,
    ImpactWeight,
    WeightSuggestion,
)

logger = structlog.get_logger(__name__)


def _period_key(d: date) -> int:
    return d.year * 100 + d.month


def weight_vector_from_row(row: ImpactWeight) -> WeightVector:
    return WeightVector(
        engagement=float(row.engagement_weight),
        completion=float(row.completion_weight),
        feedback_quality=float(row.feedback_quality_weight),
        compliance_linkage=float(row.compliance_linkage_weight),
        version=row.version,
    )


class CalibrationStore:
    """
    SQLAlchemy-backed collaborator for the run orchestrator.

    Holds a session only; no tenant state is cached between calls.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Reads ────────────────────────────────────────────────────────────

    async def fetch_validation_samples(
        self,
        tenant_id: uuid.UUID,
        model_version: int,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> list[ValidationSample]:
        """
        Load complete (predicted, actual) pairs for a tenant/model version.

        Samples missing either score are excluded by the query. Samples with
        a score outside [0, 100] are skipped here and logged, so that only
        valid scores ever reach the classifier. The optional window matches
        on the sample's (period_year, period_month).
        """
        period = ImpactValidation.period_year * 100 + ImpactValidation.period_month
        stmt = (
            select(ImpactValidation)
            .where(
                ImpactValidation.tenant_id == tenant_id,
                ImpactValidation.model_version == model_version,
                ImpactValidation.predicted_score.is_not(None),
                ImpactValidation.actual_score.is_not(None),
            )
            .order_by(ImpactValidation.created_at, ImpactValidation.id)
        )
        if period_start is not None:
            stmt = stmt.where(period >= _period_key(period_start))
        if period_end is not None:
            stmt = stmt.where(period <= _period_key(period_end))

        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise UpstreamReadError("validation samples", str(exc), tenant_id=tenant_id) from exc

        samples: list[ValidationSample] = []
        skipped = 0
        for row in rows:
            try:
                samples.append(ValidationSample(
                    predicted_score=validate_score(row.predicted_score, "predicted_score"),
                    actual_score=validate_score(row.actual_score, "actual_score"),
                ))
            except InvalidScoreError as exc:
                skipped += 1
                logger.warning(
                    "validation_sample_skipped",
                    validation_id=str(row.id),
                    tenant_id=str(tenant_id),
                    reason=exc.message,
                )

        logger.info(
            "validation_samples_fetched",
            tenant_id=str(tenant_id),
            model_version=model_version,
            n_samples=len(samples),
            n_skipped=skipped,
        )
        return samples

    async def fetch_active_weight_vector(self, tenant_id: uuid.UUID) -> Optional[WeightVector]:
        """Return the tenant's active weight vector, or None if there is none."""
        stmt = (
            select(ImpactWeight)
            .where(ImpactWeight.tenant_id == tenant_id, ImpactWeight.is_active.is_(True))
            .order_by(ImpactWeight.version.desc())
            .limit(1)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise UpstreamReadError("active weight vector", str(exc), tenant_id=tenant_id) from exc

        return weight_vector_from_row(row) if row is not None else None

    # ── Writes ───────────────────────────────────────────────────────────

    async def _commit(self, target: str, **context: Any) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(target, str(exc), **context) from exc

    async def persist_calibration_run(
        self,
        tenant_id: uuid.UUID,
        model_version: int,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        run_label: Optional[str] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> uuid.UUID:
        """Create the run shell (sample_size=0, stage=created)."""
        run = CalibrationRun(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            model_version=model_version,
            period_start=period_start,
            period_end=period_end,
            run_label=run_label or f"Calibration Run {datetime.now(timezone.utc).date().isoformat()}",
            description=description,
            created_by=created_by,
            sample_size=0,
            stage=RunStage.CREATED.value,
        )
        self.session.add(run)
        await self._commit("calibration run", tenant_id=tenant_id)
        return run.id

    async def update_run_metrics(
        self,
        run_id: uuid.UUID,
        metrics: RunMetrics,
        stage: RunStage,
    ) -> None:
        """Write final run-level metrics (once per run)."""
        values: dict[str, Any] = {"sample_size": metrics.sample_size, "stage": stage.value}
        if not metrics.is_empty:
            values.update(
                avg_validation_gap=metrics.avg_gap,
                max_validation_gap=metrics.max_gap,
                min_validation_gap=metrics.min_gap,
                correlation_score=metrics.correlation_score,
                overall_status=metrics.overall_status.value,
            )
        try:
            await self.session.execute(
                update(CalibrationRun).where(CalibrationRun.id == run_id).values(**values)
            )
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("run metrics", str(exc), run_id=run_id) from exc
        await self._commit("run metrics", run_id=run_id)

    async def mark_run_stage(
        self,
        run_id: uuid.UUID,
        stage: RunStage,
        error: Optional[dict] = None,
    ) -> None:
        values: dict[str, Any] = {"stage": stage.value}
        if error is not None:
            values["error"] = error
        try:
            await self.session.execute(
                update(CalibrationRun).where(CalibrationRun.id == run_id).values(**values)
            )
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("run stage", str(exc), run_id=run_id) from exc
        await self._commit("run stage", run_id=run_id)

    async def persist_cells(
        self,
        run_id: uuid.UUID,
        tenant_id: uuid.UUID,
        cells: Sequence[CellStats],
    ) -> None:
        """Write all cells of a run in one commit."""
        for cell in cells:
            self.session.add(CalibrationCell(
                id=uuid.uuid4(),
                calibration_run_id=run_id,
                tenant_id=tenant_id,
                predicted_bucket=cell.predicted_bucket.value,
                actual_bucket=cell.actual_bucket.value,
                count_samples=cell.count,
                avg_predicted_score=cell.avg_predicted,
                avg_actual_score=cell.avg_actual,
                avg_gap=cell.avg_gap,
                gap_direction=cell.gap_direction.value,
                is_outlier_bucket=cell.is_outlier,
                predicted_score_min=cell.predicted_min,
                predicted_score_max=cell.predicted_max,
                actual_score_min=cell.actual_min,
                actual_score_max=cell.actual_max,
            ))
        await self._commit("calibration cells", run_id=run_id, tenant_id=tenant_id)

    async def persist_weight_suggestion(
        self,
        run_id: uuid.UUID,
        tenant_id: uuid.UUID,
        source: WeightVector,
        correction: WeightCorrection,
        bias: BiasReport,
    ) -> uuid.UUID:
        """Write a draft suggestion for version ``source.version + 1``."""
        suggested = correction.weights
        suggestion = WeightSuggestion(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            calibration_run_id=run_id,
            source_weight_version=source.version,
            suggested_weight_version=source.version + 1,
            suggested_engagement_weight=suggested.engagement,
            suggested_completion_weight=suggested.completion,
            suggested_feedback_quality_weight=suggested.feedback_quality,
            suggested_compliance_linkage_weight=suggested.compliance_linkage,
            overestimation_ratio=bias.overestimation_ratio,
            underestimation_ratio=bias.underestimation_ratio,
            rationale=correction.rationale,
            status=SuggestionStatus.DRAFT.value,
        )
        self.session.add(suggestion)
        await self._commit("weight suggestion", run_id=run_id, tenant_id=tenant_id)
        return suggestion.id
