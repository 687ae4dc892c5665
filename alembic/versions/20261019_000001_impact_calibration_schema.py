"""Impact calibration schema.

Validation samples, versioned weight vectors, calibration runs with their
cells, and draft weight suggestions.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the calibration tables."""
    # Validation samples (written by the validation process)
    op.create_table(
        "impact_validations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("model_version", sa.Integer(), nullable=False),
        sa.Column("org_unit_id", sa.String(100), nullable=True),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("predicted_score", sa.Float(), nullable=True),
        sa.Column("actual_score", sa.Float(), nullable=True),
        sa.Column("validation_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("confidence_gap", sa.Float(), nullable=True),
        sa.Column("evaluated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_impact_validations_month"),
        sa.CheckConstraint(
            "validation_status IN ('pending', 'validated', 'anomaly', 'calibrated')",
            name="ck_impact_validations_status",
        ),
    )
    op.create_index("ix_impact_validations_tenant_model", "impact_validations", ["tenant_id", "model_version"])
    op.create_index(
        "ix_impact_validations_period", "impact_validations", ["tenant_id", "period_year", "period_month"]
    )
    op.create_index(
        "ix_impact_validations_pending",
        "impact_validations",
        ["tenant_id", "period_year", "period_month", "validation_status"],
    )

    # Weight vectors (one active per tenant)
    op.create_table(
        "impact_weights",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("engagement_weight", sa.Float(), nullable=False),
        sa.Column("completion_weight", sa.Float(), nullable=False),
        sa.Column("feedback_quality_weight", sa.Float(), nullable=False),
        sa.Column("compliance_linkage_weight", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("source_suggestion_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "version", name="uq_impact_weights_tenant_version"),
    )
    op.create_index("ix_impact_weights_tenant_active", "impact_weights", ["tenant_id", "is_active"])
    op.execute(
        "CREATE UNIQUE INDEX uq_impact_weights_one_active "
        "ON impact_weights (tenant_id) WHERE is_active"
    )

    # Calibration runs
    op.create_table(
        "impact_calibration_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("model_version", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("run_label", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("sample_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_validation_gap", sa.Float(), nullable=True),
        sa.Column("max_validation_gap", sa.Float(), nullable=True),
        sa.Column("min_validation_gap", sa.Float(), nullable=True),
        sa.Column("correlation_score", sa.Float(), nullable=True),
        sa.Column("overall_status", sa.String(20), nullable=True),
        sa.Column("stage", sa.String(30), nullable=False, server_default="created"),
        sa.Column("error", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_calibration_runs_tenant_created", "impact_calibration_runs", ["tenant_id", "created_at"])

    # Calibration cells
    op.create_table(
        "impact_calibration_cells",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("calibration_run_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("predicted_bucket", sa.String(30), nullable=False),
        sa.Column("actual_bucket", sa.String(30), nullable=False),
        sa.Column("count_samples", sa.Integer(), nullable=False),
        sa.Column("avg_predicted_score", sa.Float(), nullable=False),
        sa.Column("avg_actual_score", sa.Float(), nullable=False),
        sa.Column("avg_gap", sa.Float(), nullable=False),
        sa.Column("gap_direction", sa.String(20), nullable=False),
        sa.Column("is_outlier_bucket", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("predicted_score_min", sa.Float(), nullable=False),
        sa.Column("predicted_score_max", sa.Float(), nullable=False),
        sa.Column("actual_score_min", sa.Float(), nullable=False),
        sa.Column("actual_score_max", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["calibration_run_id"], ["impact_calibration_runs.id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint(
            "calibration_run_id", "predicted_bucket", "actual_bucket",
            name="uq_calibration_cells_run_buckets",
        ),
    )
    op.create_index("ix_calibration_cells_run", "impact_calibration_cells", ["calibration_run_id"])

    # Weight suggestions
    op.create_table(
        "impact_weight_suggestions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("calibration_run_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source_weight_version", sa.Integer(), nullable=False),
        sa.Column("suggested_weight_version", sa.Integer(), nullable=False),
        sa.Column("suggested_engagement_weight", sa.Float(), nullable=False),
        sa.Column("suggested_completion_weight", sa.Float(), nullable=False),
        sa.Column("suggested_feedback_quality_weight", sa.Float(), nullable=False),
        sa.Column("suggested_compliance_linkage_weight", sa.Float(), nullable=False),
        sa.Column("overestimation_ratio", sa.Float(), nullable=True),
        sa.Column("underestimation_ratio", sa.Float(), nullable=True),
        sa.Column("rationale", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("approved_by", sa.String(100), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["calibration_run_id"], ["impact_calibration_runs.id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'accepted', 'rejected')", name="ck_weight_suggestions_status"
        ),
    )
    op.create_index("ix_weight_suggestions_tenant_status", "impact_weight_suggestions", ["tenant_id", "status"])
    op.create_index("ix_weight_suggestions_run", "impact_weight_suggestions", ["calibration_run_id"])


def downgrade() -> None:
    """Drop the calibration tables."""
    op.drop_table("impact_weight_suggestions")
    op.drop_table("impact_calibration_cells")
    op.drop_table("impact_calibration_runs")
    op.execute("DROP INDEX IF EXISTS uq_impact_weights_one_active")
    op.drop_table("impact_weights")
    op.drop_table("impact_validations")
