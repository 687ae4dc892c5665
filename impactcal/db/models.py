"""
ImpactCal SQLAlchemy Models.

Five tables. Uses compatibility types for SQLite (dev/tests) + PostgreSQL (prod).
Tenant isolation is enforced by explicit tenant_id filters in the store.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from impactcal.db.compat import GUID, JSONType
from impactcal.db.engine import Base


def _genuuid():
    return uuid.uuid4()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ──────────────────────────────────────────────────────────────────────────────
# 1. Inputs (written by the validation process and weight governance)
# ──────────────────────────────────────────────────────────────────────────────


class ImpactValidation(Base):
    """One paired observation: model-predicted impact vs. observed behavior."""

    __tablename__ = "impact_validations"
    __table_args__ = (
        Index("ix_impact_validations_tenant_model", "tenant_id", "model_version"),
        Index("ix_impact_validations_period", "tenant_id", "period_year", "period_month"),
        Index(
            "ix_impact_validations_pending", "tenant_id", "period_year", "period_month", "validation_status"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    model_version: Mapped[int] = mapped_column(Integer, nullable=False)
    org_unit_id: Mapped[Optional[str]] = mapped_column(String(100))
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)

    # Either score may be missing while the validation process is still collecting
    predicted_score: Mapped[Optional[float]] = mapped_column(Float)
    actual_score: Mapped[Optional[float]] = mapped_column(Float)

    # Set by the evaluation step; calibration runs read every status
    validation_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    confidence_gap: Mapped[Optional[float]] = mapped_column(Float)
    evaluated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    @property
    def validation_gap(self) -> Optional[float]:
        if self.predicted_score is None or self.actual_score is None:
            return None
        return abs(self.predicted_score - self.actual_score)


class ImpactWeight(Base):
    """Versioned weight vector of the impact scoring model. One active per tenant."""

    __tablename__ = "impact_weights"
    __table_args__ = (
        UniqueConstraint("tenant_id", "version", name="uq_impact_weights_tenant_version"),
        Index("ix_impact_weights_tenant_active", "tenant_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    engagement_weight: Mapped[float] = mapped_column(Float, nullable=False)
    completion_weight: Mapped[float] = mapped_column(Float, nullable=False)
    feedback_quality_weight: Mapped[float] = mapped_column(Float, nullable=False)
    compliance_linkage_weight: Mapped[float] = mapped_column(Float, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source_suggestion_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    created_by: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 2. Calibration outputs (write-once, kept for audit)
# ──────────────────────────────────────────────────────────────────────────────


class CalibrationRun(Base):
    """
    One execution of the calibration engine.

    Created with sample_size=0, updated once with final metrics.
    A failed run keeps whatever was written before the failure.
    """

    __tablename__ = "impact_calibration_runs"
    __table_args__ = (
        Index("ix_calibration_runs_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    model_version: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[Optional[date]] = mapped_column(Date)
    period_end: Mapped[Optional[date]] = mapped_column(Date)
    run_label: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(String(100))

    # Run-level metrics (over individual sample gaps)
    sample_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_validation_gap: Mapped[Optional[float]] = mapped_column(Float)
    max_validation_gap: Mapped[Optional[float]] = mapped_column(Float)
    min_validation_gap: Mapped[Optional[float]] = mapped_column(Float)
    correlation_score: Mapped[Optional[float]] = mapped_column(Float)
    overall_status: Mapped[Optional[str]] = mapped_column(String(20))

    # Orchestrator progress
    stage: Mapped[str] = mapped_column(String(30), default="created", nullable=False)
    error: Mapped[Optional[dict]] = mapped_column(JSONType())

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    cells: Mapped[list["CalibrationCell"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )
    suggestions: Mapped[list["WeightSuggestion"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )


class CalibrationCell(Base):
    """Aggregate for one (predicted bucket, actual bucket) pair within a run."""

    __tablename__ = "impact_calibration_cells"
    __table_args__ = (
        UniqueConstraint(
            "calibration_run_id", "predicted_bucket", "actual_bucket",
            name="uq_calibration_cells_run_buckets",
        ),
        Index("ix_calibration_cells_run", "calibration_run_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    calibration_run_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("impact_calibration_runs.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)

    predicted_bucket: Mapped[str] = mapped_column(String(30), nullable=False)
    actual_bucket: Mapped[str] = mapped_column(String(30), nullable=False)
    count_samples: Mapped[int] = mapped_column(Integer, nullable=False)

    avg_predicted_score: Mapped[float] = mapped_column(Float, nullable=False)
    avg_actual_score: Mapped[float] = mapped_column(Float, nullable=False)
    avg_gap: Mapped[float] = mapped_column(Float, nullable=False)
    gap_direction: Mapped[str] = mapped_column(String(20), nullable=False)
    is_outlier_bucket: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    predicted_score_min: Mapped[float] = mapped_column(Float, nullable=False)
    predicted_score_max: Mapped[float] = mapped_column(Float, nullable=False)
    actual_score_min: Mapped[float] = mapped_column(Float, nullable=False)
    actual_score_max: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    run: Mapped["CalibrationRun"] = relationship(back_populates="cells")


class WeightSuggestion(Base):
    """Draft weight vector proposed by a calibration run."""

    __tablename__ = "impact_weight_suggestions"
    __table_args__ = (
        Index("ix_weight_suggestions_tenant_status", "tenant_id", "status"),
        Index("ix_weight_suggestions_run", "calibration_run_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    calibration_run_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("impact_calibration_runs.id", ondelete="CASCADE"), nullable=False
    )
    source_weight_version: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_weight_version: Mapped[int] = mapped_column(Integer, nullable=False)

    suggested_engagement_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_completion_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_feedback_quality_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_compliance_linkage_weight: Mapped[float] = mapped_column(Float, nullable=False)

    overestimation_ratio: Mapped[Optional[float]] = mapped_column(Float)
    underestimation_ratio: Mapped[Optional[float]] = mapped_column(Float)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)

    approved_by: Mapped[Optional[str]] = mapped_column(String(100))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    run: Mapped["CalibrationRun"] = relationship(back_populates="suggestions")
