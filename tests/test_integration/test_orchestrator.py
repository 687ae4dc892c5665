"""
End-to-end tests for the calibration run orchestrator.

Tests:
- 3-sample scenario (bad status, outlier-only cells, unchanged weights)
- Significant overestimation → compliance weight raised
- Empty run and the no-active-weights short-circuit
- Missing required fields rejected before any write
- Failures mark the run failed and propagate
"""

import uuid

import pytest
from sqlalchemy import func, select, text

from impactcal.calibration.errors import MissingFieldError, PersistenceError, UpstreamReadError
from impactcal.calibration.orchestrator import (
    NO_DATA_MESSAGE,
    NO_WEIGHTS_MESSAGE,
    CalibrationOrchestrator,
)
from impactcal.calibration.store import CalibrationStore
from impactcal.calibration.types import OverallStatus, RunStage
from impactcal.calibration.weights import NO_BIAS_RATIONALE
from impactcal.db.models import CalibrationCell, CalibrationRun, WeightSuggestion
from tests.conftest import add_validations, add_weights


async def _run_row(db, run_id) -> CalibrationRun:
    db.expire_all()
    return (await db.execute(select(CalibrationRun).where(CalibrationRun.id == run_id))).scalar_one()


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


class FailingCellStore(CalibrationStore):
    async def persist_cells(self, run_id, tenant_id, cells):
        raise PersistenceError("calibration cells", "disk full", run_id=run_id)


class FailingReadStore(CalibrationStore):
    async def fetch_validation_samples(self, tenant_id, model_version, period_start=None, period_end=None):
        raise UpstreamReadError("validation samples", "connection reset", tenant_id=tenant_id)


@pytest.mark.asyncio
async def test_three_sample_run(db, tenant_a):
    await add_validations(db, tenant_a, [(90, 15), (88, 20), (30, 90)])
    await add_weights(db, tenant_a, version=1)

    result = await CalibrationOrchestrator(CalibrationStore(db)).run(tenant_a, 1)

    m = result.metrics
    assert m.sample_size == 3
    assert m.avg_gap == pytest.approx(67.6667, abs=1e-4)
    assert m.correlation_score == pytest.approx(32.3333, abs=1e-4)
    assert m.overall_status == OverallStatus.BAD

    assert len(result.cells) == 2
    assert all(c.is_outlier for c in result.cells)
    assert result.bias.total_weight == 0

    suggestion = result.weight_suggestion
    assert suggestion.source_version == 1
    assert suggestion.suggested_version == 2
    assert suggestion.weights.as_dict() == pytest.approx({
        "engagement": 0.25, "completion": 0.25, "feedback_quality": 0.25, "compliance_linkage": 0.25,
    })
    assert suggestion.rationale == NO_BIAS_RATIONALE

    run = await _run_row(db, result.calibration_run_id)
    assert run.stage == RunStage.PERSISTED.value
    assert run.overall_status == "bad"
    assert await _count(db, CalibrationCell) == 2
    assert await _count(db, WeightSuggestion) == 1


@pytest.mark.asyncio
async def test_overestimation_raises_compliance_weight(db, tenant_a):
    # low_risk predicted, poor behavior observed: 3 trusted samples (gap 24)
    # plus 3 well-calibrated samples → overestimation ratio 0.5
    await add_validations(db, tenant_a, [(72, 48)] * 3 + [(90, 90)] * 3)
    await add_weights(db, tenant_a, version=4)

    result = await CalibrationOrchestrator(CalibrationStore(db)).run(tenant_a, 1)

    assert result.bias.overestimation_ratio == pytest.approx(0.5)
    assert result.bias.overestimation_significant
    w = result.weight_suggestion.weights
    assert w.compliance_linkage == pytest.approx(0.30)
    assert w.engagement == pytest.approx(0.22)
    assert w.completion == pytest.approx(0.23)
    assert w.is_normalized()
    assert result.weight_suggestion.suggested_version == 5

    row = (await db.execute(select(WeightSuggestion))).scalar_one()
    assert row.status == "draft"
    assert row.overestimation_ratio == pytest.approx(0.5)
    assert row.suggested_compliance_linkage_weight == pytest.approx(0.30)


@pytest.mark.asyncio
async def test_empty_run(db, tenant_a):
    await add_weights(db, tenant_a)

    result = await CalibrationOrchestrator(CalibrationStore(db)).run(tenant_a, 1)

    assert result.metrics.sample_size == 0
    assert result.weight_suggestion is None
    assert result.to_dict() == {
        "calibration_run_id": str(result.calibration_run_id),
        "metrics": {"sample_size": 0},
        "message": NO_DATA_MESSAGE,
    }
    run = await _run_row(db, result.calibration_run_id)
    assert run.sample_size == 0
    assert run.overall_status is None
    assert await _count(db, CalibrationCell) == 0
    assert await _count(db, WeightSuggestion) == 0


@pytest.mark.asyncio
async def test_no_active_weights(db, tenant_a):
    await add_validations(db, tenant_a, [(60, 55), (62, 58), (65, 60)])

    result = await CalibrationOrchestrator(CalibrationStore(db)).run(tenant_a, 1)

    payload = result.to_dict()
    assert payload["weight_suggestion"] is None
    assert payload["message"] == NO_WEIGHTS_MESSAGE
    assert payload["metrics"]["overall_status"] == "good"
    assert await _count(db, CalibrationCell) == 1
    assert await _count(db, WeightSuggestion) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("tenant_id,model_version,missing", [
    (None, 1, ["tenant_id"]),
    ("", 1, ["tenant_id"]),
    ("tenant", None, ["model_version"]),
    (None, None, ["tenant_id", "model_version"]),
])
async def test_missing_fields_rejected_before_any_write(db, tenant_id, model_version, missing):
    with pytest.raises(MissingFieldError) as exc:
        await CalibrationOrchestrator(CalibrationStore(db)).run(tenant_id, model_version)
    assert exc.value.details["missing_fields"] == missing
    assert await _count(db, CalibrationRun) == 0


@pytest.mark.asyncio
async def test_persistence_failure_marks_run_failed(db, tenant_a):
    await add_validations(db, tenant_a, [(60, 55)])
    await add_weights(db, tenant_a)

    with pytest.raises(PersistenceError) as exc:
        await CalibrationOrchestrator(FailingCellStore(db)).run(tenant_a, 1)

    details = exc.value.details
    assert details["stage"] == RunStage.AGGREGATING.value
    assert details["tenant_id"] == str(tenant_a)
    run_id = uuid.UUID(details["run_id"])

    run = await _run_row(db, run_id)
    assert run.stage == RunStage.FAILED.value
    assert run.error["code"] == "persistence_failure"
    assert await _count(db, WeightSuggestion) == 0


@pytest.mark.asyncio
async def test_upstream_failure_keeps_run_for_audit(db, tenant_a):
    with pytest.raises(UpstreamReadError) as exc:
        await CalibrationOrchestrator(FailingReadStore(db)).run(tenant_a, 1)

    assert exc.value.status_code == 502
    run = await _run_row(db, uuid.UUID(exc.value.details["run_id"]))
    assert run.stage == RunStage.FAILED.value
    assert run.error["stage"] == RunStage.AGGREGATING.value


@pytest.mark.asyncio
async def test_database_read_error_rolls_back_then_marks_failed(db, tenant_a, monkeypatch):
    # The sample query itself fails inside the database
    await db.execute(text("DROP TABLE impact_validations"))
    await db.commit()

    calls = []
    store = CalibrationStore(db)
    rollback = db.rollback
    mark_run_stage = store.mark_run_stage

    async def recording_rollback():
        calls.append("rollback")
        await rollback()

    async def recording_mark(run_id, stage, error=None):
        calls.append(stage.value)
        await mark_run_stage(run_id, stage, error=error)

    monkeypatch.setattr(db, "rollback", recording_rollback)
    monkeypatch.setattr(store, "mark_run_stage", recording_mark)

    with pytest.raises(UpstreamReadError) as exc:
        await CalibrationOrchestrator(store).run(tenant_a, 1)

    assert calls.index("rollback") < calls.index(RunStage.FAILED.value)
    run = await _run_row(db, uuid.UUID(exc.value.details["run_id"]))
    assert run.stage == RunStage.FAILED.value
    assert run.error["code"] == "upstream_read_failure"


@pytest.mark.asyncio
async def test_runs_do_not_share_state(db, tenant_a, tenant_b):
    await add_validations(db, tenant_a, [(60, 55)] * 3)
    await add_validations(db, tenant_b, [(90, 10)] * 3)
    await add_weights(db, tenant_a)

    orchestrator = CalibrationOrchestrator(CalibrationStore(db))
    first = await orchestrator.run(tenant_a, 1)
    second = await orchestrator.run(tenant_b, 1)

    assert first.metrics.overall_status == OverallStatus.GOOD
    assert second.metrics.overall_status == OverallStatus.BAD
    assert second.weight_suggestion is None
    assert first.calibration_run_id != second.calibration_run_id
