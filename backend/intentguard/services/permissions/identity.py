"""
Identity Derivation.

WHAT THIS DOES:
Turns the latest grade record of a subject into its identity vector: one
health score per category (keyed by category name) plus a sovereignty score.

FORMULA:
    mean        = Σ(weight_k × health_k) / Σ weight_k
    sovereignty = mean                                       (no orthogonality known)
    sovereignty = (1 - w) × mean + w × orthogonality_score   (w = orthogonality_weight)
    sovereignty = sovereignty × (1 - k_E) ^ drift_events     (k_E = drift_rate)

A taxonomy whose categories overlap heavily measures the same thing twice;
folding the orthogonality score in keeps that from inflating trust.

DRIFT:
Every DENY decision since the latest grade record is a drift event. Each one
shaves k_E (0.3% by default) off sovereignty. A fresh measurement starts the
count again.

EXAMPLE:
    mean = 0.875, no orthogonality, 10 denials:
    0.875 × 0.997^10 ≈ 0.849

USAGE:
    record = await run_service.latest("repo-main")
    denials = await audit.count_drift_events("repo-main", since=record.computed_at)
    identity = derive_identity(record, drift_events=denials)
"""

import logging
import math
from typing import Optional, Sequence

from intentguard.config import get_settings
from intentguard.services.grading.models import GradeRecord
from intentguard.services.permissions.models import IdentityVector

logger = logging.getLogger(__name__)

# Sovereignty below this counts as exhausted when forecasting drift
DRIFT_FLOOR = 0.01


def weighted_health(record: GradeRecord) -> float:
    """Weight-weighted mean of the record's category health scores."""
    total_weight = sum(score.weight for score in record.category_scores)
    if total_weight <= 0:
        return 0.0
    return sum(score.weight * score.health_score for score in record.category_scores) / total_weight


def apply_drift(sovereignty: float, drift_events: int, drift_rate: Optional[float] = None) -> float:
    """Exponential decay of sovereignty by drift events."""
    if drift_rate is None:
        drift_rate = get_settings().drift_rate
    if drift_events <= 0:
        return sovereignty
    return sovereignty * (1 - drift_rate) ** drift_events


def drift_events_until_floor(sovereignty: float, drift_rate: Optional[float] = None) -> int:
    """
    How many more DENY decisions bring sovereignty down to DRIFT_FLOOR.

    Returns 0 when sovereignty is already at or below the floor.
    """
    if drift_rate is None:
        drift_rate = get_settings().drift_rate
    if sovereignty <= DRIFT_FLOOR:
        return 0
    return math.ceil(math.log(DRIFT_FLOOR / sovereignty) / math.log(1 - drift_rate))


def derive_identity(
    record: GradeRecord,
    subject: Optional[str] = None,
    dimensions: Optional[Sequence[str]] = None,
    orthogonality_weight: Optional[float] = None,
    drift_events: int = 0,
    drift_rate: Optional[float] = None,
) -> IdentityVector:
    """
    Build an identity vector from a grade record.

    Args:
        record: The subject's latest grade record
        subject: Defaults to the record's subject
        dimensions: Ordered permission space. Defaults to the record's categories in order.
        orthogonality_weight: Share of sovereignty taken from orthogonality. Defaults to config.
        drift_events: DENY decisions recorded since the grade record
        drift_rate: Decay per drift event. Defaults to config.

    Returns:
        IdentityVector; categories not in the record score 0.0
    """
    if orthogonality_weight is None:
        orthogonality_weight = get_settings().orthogonality_weight

    category_scores = {score.name: score.health_score for score in record.category_scores}
    if dimensions is None:
        dimensions = [score.name for score in record.category_scores]

    sovereignty = weighted_health(record)
    if record.orthogonality_score is not None:
        sovereignty = (
            (1 - orthogonality_weight) * sovereignty
            + orthogonality_weight * record.orthogonality_score
        )
    sovereignty = apply_drift(max(0.0, min(1.0, sovereignty)), drift_events, drift_rate)

    identity = IdentityVector(
        subject=subject or record.subject,
        category_scores=category_scores,
        sovereignty_score=sovereignty,
        dimensions=tuple(dimensions),
        taxonomy_version=record.taxonomy_version,
        last_updated=record.computed_at,
        drift_events=max(0, drift_events),
    )

    logger.info(
        f"Derived identity for '{identity.subject}': {len(category_scores)} dimensions, "
        f"sovereignty={sovereignty:.3f}, drift_events={identity.drift_events}"
    )
    return identity
