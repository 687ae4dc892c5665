"""
Run Orchestrator — sequence one calibration run end-to-end.

Stages:
    created → aggregating → summarized → bias_analyzed
    → suggestion_drafted → persisted            (or → failed)

Short-circuits (successful, not errors):
- zero samples: run persisted with sample_size=0, no cells, no suggestion
- no active weight vector: metrics returned, weight_suggestion=None

No retries. The first failure aborts the run; the run row keeps what was
already written, gets stage=failed plus the error context, and the error
propagates to the caller.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import structlog

from impactcal.calibration.bias import BiasReport, analyze_bias
from impactcal.calibration.cells import CellStats, aggregate_cells
from impactcal.calibration.errors import CalibrationError, MissingFieldError, PersistenceError
from impactcal.calibration.store import CalibrationStore
from impactcal.calibration.summary import RunMetrics, summarize_run
from impactcal.calibration.types import RunStage, WeightVector
from impactcal.calibration.weights import suggest_weights

logger = structlog.get_logger(__name__)

NO_DATA_MESSAGE = "No validation data available for calibration"
NO_WEIGHTS_MESSAGE = "Calibration completed but no weight suggestion generated (no active weights)"


@dataclass(frozen=True)
class SuggestionSummary:
    id: uuid.UUID
    source_version: int
    suggested_version: int
    weights: WeightVector
    rationale: str

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "source_version": self.source_version,
            "suggested_version": self.suggested_version,
            "weights": self.weights.as_dict(),
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class CalibrationResult:
    """What the trigger returns to its caller."""
    calibration_run_id: uuid.UUID
    metrics: RunMetrics
    weight_suggestion: Optional[SuggestionSummary] = None
    message: Optional[str] = None
    cells: tuple[CellStats, ...] = field(default_factory=tuple)
    bias: Optional[BiasReport] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "calibration_run_id": str(self.calibration_run_id),
            "metrics": self.metrics.to_dict(),
        }
        if self.message is not None:
            payload["message"] = self.message
        if not self.metrics.is_empty:
            payload["weight_suggestion"] = (
                self.weight_suggestion.to_dict() if self.weight_suggestion else None
            )
        return payload


class CalibrationOrchestrator:
    """
    Runs the calibration pipeline against a store.

    Stateless between runs: every call reads the tenant's samples and
    active weights afresh.
    """

    def __init__(self, store: CalibrationStore):
        self.store = store

    async def run(
        self,
        tenant_id: Optional[uuid.UUID],
        model_version: Optional[int],
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        run_label: Optional[str] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> CalibrationResult:
        """
        Execute one calibration run.

        Args:
            tenant_id: Tenant whose model is calibrated (required)
            model_version: Impact model version the samples belong to (required)
            period_start: Optional window start (matched by sample month)
            period_end: Optional window end (matched by sample month)
            run_label: Display label; defaults to "Calibration Run <date>"
            description: Free text
            created_by: User who triggered the run

        Returns:
            CalibrationResult

        Raises:
            MissingFieldError: before any work, if a required field is absent
            CalibrationError: any later failure, with stage/tenant/run context
        """
        missing = [
            name for name, value in (("tenant_id", tenant_id), ("model_version", model_version))
            if value is None or value == ""
        ]
        if missing:
            raise MissingFieldError(missing)

        log = logger.bind(tenant_id=str(tenant_id), model_version=model_version)
        log.info("calibration_run_starting", period_start=period_start, period_end=period_end)

        stage = RunStage.CREATED
        try:
            run_id = await self.store.persist_calibration_run(
                tenant_id=tenant_id,
                model_version=model_version,
                period_start=period_start,
                period_end=period_end,
                run_label=run_label,
                description=description,
                created_by=created_by,
            )
        except CalibrationError as exc:
            exc.with_context(stage=stage.value, tenant_id=tenant_id)
            log.error("calibration_run_create_failed", error=exc.message)
            raise

        log = log.bind(run_id=str(run_id))
        log.info("calibration_stage", stage=stage.value)

        try:
            # ── 1. Samples → cells ────────────────────────────────────
            stage = RunStage.AGGREGATING
            log.info("calibration_stage", stage=stage.value)
            samples = await self.store.fetch_validation_samples(
                tenant_id, model_version, period_start, period_end
            )
            cells = aggregate_cells(samples)

            # ── 2. Run-level metrics ──────────────────────────────────
            metrics = summarize_run(samples)
            if metrics.is_empty:
                await self.store.update_run_metrics(run_id, metrics, RunStage.PERSISTED)
                log.info("calibration_run_empty")
                return CalibrationResult(
                    calibration_run_id=run_id,
                    metrics=metrics,
                    message=NO_DATA_MESSAGE,
                )

            await self.store.persist_cells(run_id, tenant_id, cells)
            stage = RunStage.SUMMARIZED
            await self.store.update_run_metrics(run_id, metrics, stage)
            log.info(
                "calibration_stage",
                stage=stage.value,
                sample_size=metrics.sample_size,
                n_cells=len(cells),
                avg_gap=round(metrics.avg_gap, 4),
                overall_status=metrics.overall_status.value,
            )

            # ── 3. Active weights (read once) ─────────────────────────
            current = await self.store.fetch_active_weight_vector(tenant_id)
            if current is None:
                await self.store.mark_run_stage(run_id, RunStage.PERSISTED)
                log.warning("calibration_no_active_weights")
                return CalibrationResult(
                    calibration_run_id=run_id,
                    metrics=metrics,
                    message=NO_WEIGHTS_MESSAGE,
                    cells=tuple(cells),
                )

            # ── 4. Bias → suggestion ──────────────────────────────────
            stage = RunStage.BIAS_ANALYZED
            bias = analyze_bias(cells)
            log.info("calibration_stage", stage=stage.value)

            stage = RunStage.SUGGESTION_DRAFTED
            correction = suggest_weights(current, bias)
            suggestion_id = await self.store.persist_weight_suggestion(
                run_id, tenant_id, current, correction, bias
            )
            log.info("calibration_stage", stage=stage.value, suggestion_id=str(suggestion_id))

            stage = RunStage.PERSISTED
            await self.store.mark_run_stage(run_id, stage)
            log.info("calibration_run_completed")

            return CalibrationResult(
                calibration_run_id=run_id,
                metrics=metrics,
                weight_suggestion=SuggestionSummary(
                    id=suggestion_id,
                    source_version=current.version,
                    suggested_version=current.version + 1,
                    weights=correction.weights,
                    rationale=correction.rationale,
                ),
                cells=tuple(cells),
                bias=bias,
            )

        except Exception as exc:
            if isinstance(exc, CalibrationError):
                exc.with_context(stage=stage.value, tenant_id=tenant_id, run_id=run_id)
            await self._record_failure(run_id, stage, exc, log)
            raise

    async def _record_failure(
        self,
        run_id: uuid.UUID,
        stage: RunStage,
        exc: Exception,
        log: Any,
    ) -> None:
        """Best-effort stage=failed marker; the original error always wins."""
        error = {"stage": stage.value, "type": type(exc).__name__, "message": str(exc)}
        if isinstance(exc, CalibrationError):
            error["code"] = exc.code.value
        log.error("calibration_run_failed", **error)
        try:
            await self.store.mark_run_stage(run_id, RunStage.FAILED, error=error)
        except PersistenceError as mark_exc:
            log.error("calibration_failure_not_recorded", error=mark_exc.message)
