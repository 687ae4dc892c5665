"""
Validation Recorder — store paired (predicted, actual) observations and
grade them.

These are the samples calibration runs read. Scores are range-checked
before they are written, so the engine only skips rows that were inserted
behind the API's back.

Evaluation grades each pending sample of a period by its gap:
- gap <= 10        → validated
- 10 < gap < 25    → anomaly
- gap >= 25        → calibrated (needs recalibration)
confidence_gap is half the gap once the gap exceeds 15, else 0.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.calibration.buckets import validate_score
from impactcal.calibration.schemas import ValidationSampleIn
from impactcal.calibration.types import ValidationStatus
from impactcal.db.models import ImpactValidation

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

VALIDATED_MAX_GAP: float = 10.0        # gap at or below → validated
CALIBRATED_MIN_GAP: float = 25.0       # gap at or above → calibrated
CONFIDENCE_GAP_THRESHOLD: float = 15.0 # gap above this carries a confidence penalty
CONFIDENCE_GAP_FACTOR: float = 0.5


@dataclass(frozen=True)
class ValidationEvaluation:
    """Counts of one evaluation pass."""
    processed: int = 0
    updated: int = 0
    skipped: int = 0


def grade_gap(gap: float) -> tuple[ValidationStatus, float]:
    """Return (status, confidence_gap) for one sample gap."""
    if gap <= VALIDATED_MAX_GAP:
        status = ValidationStatus.VALIDATED
    elif gap < CALIBRATED_MIN_GAP:
        status = ValidationStatus.ANOMALY
    else:
        status = ValidationStatus.CALIBRATED

    confidence_gap = gap * CONFIDENCE_GAP_FACTOR if gap > CONFIDENCE_GAP_THRESHOLD else 0.0
    return status, confidence_gap


class ValidationRecorder:
    """Bulk writer and evaluator for impact validation samples."""

    async def record(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        samples: Sequence[ValidationSampleIn],
    ) -> int:
        """
        Insert validation samples for a tenant.

        A sample may omit either score; such rows are stored but ignored by
        calibration until completed.

        Returns:
            Number of rows inserted
        """
        rows = []
        for sample in samples:
            rows.append(ImpactValidation(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                model_version=sample.model_version,
                org_unit_id=sample.org_unit_id,
                period_year=sample.period_year,
                period_month=sample.period_month,
                predicted_score=self._checked(sample.predicted_score, "predicted_score"),
                actual_score=self._checked(sample.actual_score, "actual_score"),
                validation_status=ValidationStatus.PENDING.value,
            ))

        session.add_all(rows)
        await session.flush()

        logger.info(
            "validations_recorded",
            tenant_id=str(tenant_id),
            n_rows=len(rows),
            n_incomplete=sum(1 for r in rows if r.predicted_score is None or r.actual_score is None),
        )
        return len(rows)

    async def evaluate(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        period_year: int,
        period_month: int,
    ) -> ValidationEvaluation:
        """
        Grade every pending validation of one period.

        Rows without both scores have no gap; they are counted as skipped
        and stay pending. Already graded rows are not touched.
        """
        result = await session.execute(
            select(ImpactValidation)
            .where(
                ImpactValidation.tenant_id == tenant_id,
                ImpactValidation.period_year == period_year,
                ImpactValidation.period_month == period_month,
                ImpactValidation.validation_status == ValidationStatus.PENDING.value,
            )
            .order_by(ImpactValidation.created_at, ImpactValidation.id)
        )
        rows = result.scalars().all()

        now = datetime.now(timezone.utc).replace(tzinfo=None)
        updated = skipped = 0
        for row in rows:
            gap = row.validation_gap
            if gap is None:
                skipped += 1
                continue
            status, confidence_gap = grade_gap(gap)
            row.validation_status = status.value
            row.confidence_gap = confidence_gap
            row.evaluated_at = now
            updated += 1

        await session.flush()

        evaluation = ValidationEvaluation(processed=len(rows), updated=updated, skipped=skipped)
        logger.info(
            "validations_evaluated",
            tenant_id=str(tenant_id),
            period=f"{period_year}-{period_month:02d}",
            processed=evaluation.processed,
            updated=evaluation.updated,
            skipped=evaluation.skipped,
        )
        return evaluation

    @staticmethod
    def _checked(score: Optional[float], kind: str) -> Optional[float]:
        return None if score is None else validate_score(score, kind)
