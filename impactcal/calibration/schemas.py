"""
Calibration API Schemas.

Request bodies accepted by the calibration endpoints and the read models
returned for runs, cells, weight vectors and suggestions.
"""

import math
import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from impactcal.calibration.types import OverallStatus, SuggestionStatus


# ── Requests ─────────────────────────────────────────────────────────────


class CalibrationRunRequest(BaseModel):
    """
    Trigger a calibration run.

    tenant_id and model_version are checked by the orchestrator, so that a
    missing field is reported as missing_field rather than a schema error.
    """
    tenant_id: Optional[uuid.UUID] = None
    model_version: Optional[int] = Field(default=None, ge=1)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    run_label: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _period_ordered(self) -> "CalibrationRunRequest":
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValueError("period_start must be on or before period_end")
        return self


class ValidationSampleIn(BaseModel):
    """One validation observation. Either score may still be missing."""
    model_version: int = Field(ge=1)
    period_year: int = Field(ge=2000, le=2100)
    period_month: int = Field(ge=1, le=12)
    org_unit_id: Optional[str] = Field(default=None, max_length=100)
    predicted_score: Optional[float] = Field(default=None, ge=0, le=100)
    actual_score: Optional[float] = Field(default=None, ge=0, le=100)


class ValidationBatchRequest(BaseModel):
    tenant_id: Optional[uuid.UUID] = None
    samples: list[ValidationSampleIn] = Field(min_length=1, max_length=5000)


class ValidationEvaluateRequest(BaseModel):
    """Evaluate the pending validations of one period."""
    tenant_id: Optional[uuid.UUID] = None
    period_year: int = Field(ge=2000, le=2100)
    period_month: int = Field(ge=1, le=12)


class WeightVectorCreate(BaseModel):
    """A new weight vector version. Must be non-negative and sum to 1."""
    tenant_id: Optional[uuid.UUID] = None
    engagement: float = Field(ge=0, le=1)
    completion: float = Field(ge=0, le=1)
    feedback_quality: float = Field(ge=0, le=1)
    compliance_linkage: float = Field(ge=0, le=1)

    @model_validator(mode="after")
    def _sums_to_one(self) -> "WeightVectorCreate":
        total = self.engagement + self.completion + self.feedback_quality + self.compliance_linkage
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"weights must sum to 1.0 (got {total:.6f})")
        return self


# ── Responses ────────────────────────────────────────────────────────────


class ValidationBatchResponse(BaseModel):
    tenant_id: uuid.UUID
    inserted: int


class ValidationEvaluateResponse(BaseModel):
    tenant_id: uuid.UUID
    period_year: int
    period_month: int
    processed: int
    updated: int
    skipped: int


class CalibrationRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    model_version: int
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    run_label: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    sample_size: int
    avg_validation_gap: Optional[float] = None
    max_validation_gap: Optional[float] = None
    min_validation_gap: Optional[float] = None
    correlation_score: Optional[float] = None
    overall_status: Optional[OverallStatus] = None
    stage: str
    error: Optional[dict] = None
    created_at: datetime
    updated_at: datetime


class CalibrationRunListResponse(BaseModel):
    runs: list[CalibrationRunOut]
    total: int


class CalibrationCellOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    calibration_run_id: uuid.UUID
    predicted_bucket: str
    actual_bucket: str
    count_samples: int
    avg_predicted_score: float
    avg_actual_score: float
    avg_gap: float
    gap_direction: str
    is_outlier_bucket: bool
    predicted_score_min: float
    predicted_score_max: float
    actual_score_min: float
    actual_score_max: float
    notes: Optional[str] = None


class WeightVectorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    version: int
    engagement_weight: float
    completion_weight: float
    feedback_quality_weight: float
    compliance_linkage_weight: float
    is_active: bool
    source_suggestion_id: Optional[uuid.UUID] = None
    created_by: Optional[str] = None
    created_at: datetime


class WeightSuggestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    calibration_run_id: uuid.UUID
    source_weight_version: int
    suggested_weight_version: int
    suggested_engagement_weight: float
    suggested_completion_weight: float
    suggested_feedback_quality_weight: float
    suggested_compliance_linkage_weight: float
    overestimation_ratio: Optional[float] = None
    underestimation_ratio: Optional[float] = None
    rationale: str
    status: SuggestionStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class StatusBreakdown(BaseModel):
    good: int = 0
    needs_tuning: int = 0
    bad: int = 0


class CalibrationStats(BaseModel):
    """Aggregate view over all runs of a tenant."""
    total_runs: int
    avg_sample_size: float
    avg_gap: float
    status_breakdown: StatusBreakdown


class SuggestionAcceptResponse(BaseModel):
    suggestion: WeightSuggestionOut
    weight: WeightVectorOut
