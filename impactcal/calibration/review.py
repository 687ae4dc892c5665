"""
Weight Governance — the human step between a draft suggestion and the
weights the impact model actually uses.

Suggestion lifecycle:
    draft → accepted   (a new weight version is created and activated)
    draft → rejected

Exactly one weight vector per tenant is active after any governance
operation. The calibration engine never calls into this module.
"""

import math
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from impactcal.calibration.errors import InvalidTransitionError, InvalidWeightsError
from impactcal.calibration.types import SuggestionStatus, WeightVector
from impactcal.db import queries
from impactcal.db.models import ImpactWeight, WeightSuggestion

logger = structlog.get_logger(__name__)

SUM_TOLERANCE: float = 1e-6


def check_weight_vector(weights: WeightVector) -> None:
    """Raise InvalidWeightsError unless weights are non-negative and sum to 1."""
    negative = [name for name, value in weights.as_dict().items() if value < 0]
    if negative:
        raise InvalidWeightsError(f"negative weights: {', '.join(negative)}")
    if not math.isclose(weights.total, 1.0, abs_tol=SUM_TOLERANCE):
        raise InvalidWeightsError(f"weights sum to {weights.total:.6f}, expected 1.0")


class WeightGovernance:
    """Creates weight versions and reviews draft suggestions."""

    async def create_weight_version(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        weights: WeightVector,
        created_by: Optional[str] = None,
        version: Optional[int] = None,
        source_suggestion_id: Optional[uuid.UUID] = None,
    ) -> ImpactWeight:
        """
        Store a new weight vector and make it the tenant's only active one.

        Args:
            session: Database session (caller commits)
            tenant_id: Owning tenant
            weights: Vector to store; must be normalized
            created_by: Acting user
            version: Requested version; the next free version is used when it
                is absent or already taken
            source_suggestion_id: Suggestion this version was accepted from

        Returns:
            The new, active ImpactWeight row
        """
        check_weight_vector(weights)

        next_version = await queries.max_weight_version(session, tenant_id) + 1
        if version is None or version < next_version:
            if version is not None:
                logger.warning(
                    "weight_version_taken",
                    tenant_id=str(tenant_id),
                    requested=version,
                    assigned=next_version,
                )
            version = next_version

        await session.execute(
            update(ImpactWeight)
            .where(ImpactWeight.tenant_id == tenant_id, ImpactWeight.is_active.is_(True))
            .values(is_active=False)
        )
        row = ImpactWeight(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            version=version,
            engagement_weight=weights.engagement,
            completion_weight=weights.completion,
            feedback_quality_weight=weights.feedback_quality,
            compliance_linkage_weight=weights.compliance_linkage,
            is_active=True,
            source_suggestion_id=source_suggestion_id,
            created_by=created_by,
        )
        session.add(row)
        await session.flush()

        logger.info(
            "weight_version_activated",
            tenant_id=str(tenant_id),
            version=version,
            source_suggestion_id=str(source_suggestion_id) if source_suggestion_id else None,
        )
        return row

    async def accept_suggestion(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        suggestion_id: uuid.UUID,
        reviewer: Optional[str] = None,
    ) -> tuple[WeightSuggestion, ImpactWeight]:
        """Accept a draft: activate its vector as the suggested version."""
        suggestion = await queries.get_suggestion(session, tenant_id, suggestion_id)
        self._require_draft(suggestion, SuggestionStatus.ACCEPTED)

        weight = await self.create_weight_version(
            session,
            tenant_id,
            WeightVector(
                engagement=suggestion.suggested_engagement_weight,
                completion=suggestion.suggested_completion_weight,
                feedback_quality=suggestion.suggested_feedback_quality_weight,
                compliance_linkage=suggestion.suggested_compliance_linkage_weight,
            ),
            created_by=reviewer,
            version=suggestion.suggested_weight_version,
            source_suggestion_id=suggestion.id,
        )
        self._close(suggestion, SuggestionStatus.ACCEPTED, reviewer)
        await session.flush()

        logger.info(
            "suggestion_accepted",
            tenant_id=str(tenant_id),
            suggestion_id=str(suggestion_id),
            weight_version=weight.version,
        )
        return suggestion, weight

    async def reject_suggestion(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        suggestion_id: uuid.UUID,
        reviewer: Optional[str] = None,
    ) -> WeightSuggestion:
        suggestion = await queries.get_suggestion(session, tenant_id, suggestion_id)
        self._require_draft(suggestion, SuggestionStatus.REJECTED)
        self._close(suggestion, SuggestionStatus.REJECTED, reviewer)
        await session.flush()

        logger.info("suggestion_rejected", tenant_id=str(tenant_id), suggestion_id=str(suggestion_id))
        return suggestion

    @staticmethod
    def _require_draft(suggestion: WeightSuggestion, requested: SuggestionStatus) -> None:
        if suggestion.status != SuggestionStatus.DRAFT.value:
            raise InvalidTransitionError(str(suggestion.id), suggestion.status, requested.value)

    @staticmethod
    def _close(suggestion: WeightSuggestion, status: SuggestionStatus, reviewer: Optional[str]) -> None:
        suggestion.status = status.value
        suggestion.approved_by = reviewer
        suggestion.approved_at = datetime.now(timezone.utc).replace(tzinfo=None)
