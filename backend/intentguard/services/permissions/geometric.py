"""
Geometric Permission Engine.

WHAT THIS DOES:
Decides whether a subject may perform an action by comparing two vectors
in the same category space:

    Permission(subject, action) = Identity(subject) ∩ Requirement(action) >= Threshold

WHY THIS MATTERS:
Role lists answer "who are you". This answers "how healthy is your track
record in exactly the areas this action touches". A subject with great
documentation but failing tests should not get to push to main.

TWO CONDITIONS, BOTH REQUIRED:
1. overlap(identity, requirement) >= threshold   (default 0.8)
2. sovereignty >= requirement.min_sovereignty

OVERLAP MODES:
- cosine (default):  max(0, (I · R) / (||I|| × ||R||))
- threshold:         fraction of required categories with identity >= minimum

EXAMPLE (git_push, requires code_quality .7, testing .6, security .5):
    identity = {security: .9, reliability: .9, code_quality: .8, testing: .7}
    overlap ≈ 0.82 ≥ 0.8 and sovereignty 0.75 ≥ 0.7 → ALLOW

    Drop code_quality from the identity:
    overlap ≈ 0.57 < 0.8 → DENY, failed_categories = [code_quality: 0.00 < 0.7]

USAGE:
    decision = check_permission(identity, requirement)
    if not decision.allowed:
        ...
"""

import logging
from typing import Callable, Mapping, Optional, Sequence

from intentguard.config import get_settings
from intentguard.services.permissions.models import (
    CategoryShortfall,
    IdentityVector,
    OverlapMode,
    PermissionDecision,
    PermissionRequirement,
    SovereigntyLevel,
)
from intentguard.services.vectors import cosine_similarity

logger = logging.getLogger(__name__)

OverlapFn = Callable[[IdentityVector, PermissionRequirement], float]


# =============================================================================
# VECTOR SPACE
# =============================================================================

def permission_space(
    identity: IdentityVector,
    requirement: PermissionRequirement,
) -> tuple[str, ...]:
    """
    The ordered dimensions both vectors are projected onto.

    The identity's own dimensions first, then any requirement category the
    identity does not know about (it scores 0 there).
    """
    dimensions = list(identity.dimensions or identity.category_scores.keys())
    seen = set(dimensions)
    for category in requirement.required_scores:
        if category not in seen:
            dimensions.append(category)
            seen.add(category)
    return tuple(dimensions)


def to_vector(scores: Mapping[str, float], dimensions: Sequence[str]) -> list[float]:
    """Project a sparse score mapping onto ordered dimensions. Missing → 0.0."""
    return [float(scores.get(dimension, 0.0)) for dimension in dimensions]


# =============================================================================
# OVERLAP
# =============================================================================

def compute_overlap(identity: IdentityVector, requirement: PermissionRequirement) -> float:
    """
    Geometric overlap in [0, 1].

    Negative cosines cannot occur with non-negative scores, but are floored
    anyway so the result is always usable as a fraction. An empty
    requirement is a zero vector and overlaps nothing (0.0).
    """
    dimensions = permission_space(identity, requirement)
    identity_vector = to_vector(identity.category_scores, dimensions)
    requirement_vector = to_vector(requirement.required_scores, dimensions)
    return max(0.0, cosine_similarity(identity_vector, requirement_vector))


def compute_overlap_threshold(
    identity: IdentityVector,
    requirement: PermissionRequirement,
) -> float:
    """
    Fraction of required categories the identity meets individually.

    No required categories → 1.0 (nothing to fail).
    """
    if not requirement.required_scores:
        return 1.0

    met = sum(
        1
        for category, minimum in requirement.required_scores.items()
        if identity.score(category) >= minimum
    )
    return met / len(requirement.required_scores)


OVERLAP_FUNCTIONS: dict[OverlapMode, OverlapFn] = {
    OverlapMode.COSINE: compute_overlap,
    OverlapMode.THRESHOLD: compute_overlap_threshold,
}


# =============================================================================
# DECISION
# =============================================================================

def find_shortfalls(
    identity: IdentityVector,
    requirement: PermissionRequirement,
) -> list[CategoryShortfall]:
    """Every required category where the identity scores below the minimum."""
    return [
        CategoryShortfall(category=category, actual=identity.score(category), required=minimum)
        for category, minimum in requirement.required_scores.items()
        if identity.score(category) < minimum
    ]


def check_permission(
    identity: IdentityVector,
    requirement: PermissionRequirement,
    threshold: Optional[float] = None,
    mode: OverlapMode = OverlapMode.COSINE,
    overlap_fn: Optional[OverlapFn] = None,
) -> PermissionDecision:
    """
    Check whether an identity may perform an action.

    Args:
        identity: The subject's identity vector
        requirement: What the action needs
        threshold: Minimum overlap. Defaults to config value.
        mode: Which built-in overlap function to use
        overlap_fn: Custom overlap function; takes precedence over mode

    Returns:
        PermissionDecision with both checks reported separately
    """
    if threshold is None:
        threshold = get_settings().permission_threshold

    mode = OverlapMode(mode)
    overlap_fn = overlap_fn or OVERLAP_FUNCTIONS[mode]

    overlap = overlap_fn(identity, requirement)
    sovereignty = identity.sovereignty_score

    overlap_passed = overlap >= threshold
    sovereignty_passed = sovereignty >= requirement.min_sovereignty

    decision = PermissionDecision(
        allowed=overlap_passed and sovereignty_passed,
        overlap=overlap,
        sovereignty=sovereignty,
        threshold=threshold,
        min_sovereignty=requirement.min_sovereignty,
        overlap_passed=overlap_passed,
        sovereignty_passed=sovereignty_passed,
        failed_categories=find_shortfalls(identity, requirement),
        mode=mode,
        action_name=requirement.action_name,
        subject=identity.subject,
    )

    if decision.allowed:
        logger.info(
            f"ALLOW {requirement.action_name} for '{identity.subject}' "
            f"(overlap={overlap:.3f}, sovereignty={sovereignty:.3f})"
        )
    else:
        logger.warning(
            f"DENY {requirement.action_name} for '{identity.subject}': "
            f"overlap={overlap:.3f} (need {threshold}), "
            f"sovereignty={sovereignty:.3f} (need {requirement.min_sovereignty}), "
            f"shortfalls={[str(s) for s in decision.failed_categories]}"
        )

    return decision


# =============================================================================
# SOVEREIGNTY INTERPRETATION
# =============================================================================

SOVEREIGNTY_BANDS: list[tuple[float, SovereigntyLevel, str]] = [
    (0.8, SovereigntyLevel.AUTONOMOUS, "Trusted to act without oversight"),
    (0.6, SovereigntyLevel.SUPERVISED, "May act; actions are reviewed"),
    (0.4, SovereigntyLevel.RESTRICTED, "Low-risk actions only"),
]


def interpret_sovereignty(score: float) -> tuple[SovereigntyLevel, str]:
    """Map a sovereignty score to an operating level and a short description."""
    for floor, level, description in SOVEREIGNTY_BANDS:
        if score >= floor:
            return level, description
    return SovereigntyLevel.MANUAL_APPROVAL, "Every action needs manual approval"
