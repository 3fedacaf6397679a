"""
Action Requirements — what each gated action needs from an identity.

Sparse vectors: only the categories an action touches are listed, each with
its minimum score. Extend by registering new requirements as tools are added.
"""

import logging
from typing import Iterable, Optional

from intentguard.services.permissions.models import PermissionRequirement

logger = logging.getLogger(__name__)


class UnknownActionError(LookupError):
    """No requirement is registered for this action name."""

    def __init__(self, action_name: str):
        self.action_name = action_name
        super().__init__(f"No permission requirement registered for action '{action_name}'")


DEFAULT_REQUIREMENTS: tuple[PermissionRequirement, ...] = (
    PermissionRequirement(
        action_name="shell_execute",
        required_scores={"security": 0.7, "reliability": 0.5},
        min_sovereignty=0.6,
        description="Execute shell commands",
    ),
    PermissionRequirement(
        action_name="file_write",
        required_scores={"reliability": 0.4, "data_integrity": 0.3},
        min_sovereignty=0.2,
        description="Write files to disk",
    ),
    PermissionRequirement(
        action_name="file_delete",
        required_scores={"security": 0.6, "reliability": 0.6},
        min_sovereignty=0.5,
        description="Delete files from disk",
    ),
    PermissionRequirement(
        action_name="git_push",
        required_scores={"code_quality": 0.7, "testing": 0.6, "security": 0.5},
        min_sovereignty=0.7,
        description="Push to git remote",
    ),
    PermissionRequirement(
        action_name="git_force_push",
        required_scores={"code_quality": 0.9, "testing": 0.8, "security": 0.8, "reliability": 0.7},
        min_sovereignty=0.9,
        description="Force push to git remote (destructive)",
    ),
    PermissionRequirement(
        action_name="crm_update_lead",
        required_scores={"data_integrity": 0.5, "process_adherence": 0.4},
        min_sovereignty=0.3,
        description="Update CRM lead data",
    ),
    PermissionRequirement(
        action_name="crm_delete_lead",
        required_scores={"data_integrity": 0.7, "security": 0.5, "accountability": 0.6},
        min_sovereignty=0.6,
        description="Delete CRM lead (destructive)",
    ),
    PermissionRequirement(
        action_name="send_message",
        required_scores={"communication": 0.5, "accountability": 0.4},
        min_sovereignty=0.3,
        description="Send message to external channel",
    ),
    PermissionRequirement(
        action_name="send_email",
        required_scores={"communication": 0.6, "accountability": 0.5, "transparency": 0.4},
        min_sovereignty=0.5,
        description="Send outbound email",
    ),
    PermissionRequirement(
        action_name="deploy",
        required_scores={"code_quality": 0.8, "testing": 0.7, "security": 0.6, "reliability": 0.7},
        min_sovereignty=0.8,
        description="Deploy to production",
    ),
)


class RequirementRegistry:
    """Lookup of permission requirements by action name."""

    def __init__(self, requirements: Optional[Iterable[PermissionRequirement]] = None):
        self._requirements: dict[str, PermissionRequirement] = {}
        for requirement in (DEFAULT_REQUIREMENTS if requirements is None else requirements):
            self.register(requirement)

    def __contains__(self, action_name: str) -> bool:
        return action_name in self._requirements

    def __len__(self) -> int:
        return len(self._requirements)

    def register(self, requirement: PermissionRequirement) -> None:
        """Add or replace the requirement for an action."""
        if requirement.action_name in self._requirements:
            logger.info(f"Replacing permission requirement for '{requirement.action_name}'")
        self._requirements[requirement.action_name] = requirement

    def get(self, action_name: str) -> Optional[PermissionRequirement]:
        return self._requirements.get(action_name)

    def require(self, action_name: str) -> PermissionRequirement:
        """Like get(), but raises UnknownActionError instead of returning None."""
        requirement = self.get(action_name)
        if requirement is None:
            raise UnknownActionError(action_name)
        return requirement

    def all(self) -> list[PermissionRequirement]:
        return sorted(self._requirements.values(), key=lambda r: r.action_name)


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

_default_registry = RequirementRegistry()


def get_requirement(action_name: str) -> Optional[PermissionRequirement]:
    """Look up one of the default requirements by action name."""
    return _default_registry.get(action_name)
