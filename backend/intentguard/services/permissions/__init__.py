from intentguard.services.permissions.geometric import (
    check_permission,
    compute_overlap,
    compute_overlap_threshold,
    interpret_sovereignty,
    permission_space,
    to_vector,
)
from intentguard.services.permissions.identity import (
    apply_drift,
    derive_identity,
    drift_events_until_floor,
)
from intentguard.services.permissions.models import (
    CategoryShortfall,
    IdentityVector,
    OverlapMode,
    PermissionDecision,
    PermissionRequirement,
    SovereigntyLevel,
)
from intentguard.services.permissions.requirements import (
    DEFAULT_REQUIREMENTS,
    RequirementRegistry,
    UnknownActionError,
    get_requirement,
)
from intentguard.services.vectors import cosine_similarity

__all__ = [
    "check_permission",
    "compute_overlap",
    "compute_overlap_threshold",
    "cosine_similarity",
    "interpret_sovereignty",
    "permission_space",
    "to_vector",
    "apply_drift",
    "derive_identity",
    "drift_events_until_floor",
    "CategoryShortfall",
    "IdentityVector",
    "OverlapMode",
    "PermissionDecision",
    "PermissionRequirement",
    "SovereigntyLevel",
    "DEFAULT_REQUIREMENTS",
    "RequirementRegistry",
    "UnknownActionError",
    "get_requirement",
]
