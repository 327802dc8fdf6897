"""
Deployment status states and the allowed transitions between them.
"""

from enum import Enum
from typing import Dict, FrozenSet

from .errors import InvalidTransition


class DeploymentStatus(str, Enum):
    """Deployment status states."""
    QUEUED = "queued"
    VALIDATING_CREDENTIAL = "validating_credential"
    ATTEMPTING = "attempting"
    DEPLOYED = "deployed"
    NEEDS_SETUP = "needs_setup"
    FAILED = "failed"


TERMINAL_STATUSES: FrozenSet[DeploymentStatus] = frozenset({
    DeploymentStatus.DEPLOYED,
    DeploymentStatus.NEEDS_SETUP,
    DeploymentStatus.FAILED,
})

# attempting -> attempting is the move to the next strategy in a fallback chain
STATUS_TRANSITIONS: Dict[DeploymentStatus, FrozenSet[DeploymentStatus]] = {
    DeploymentStatus.QUEUED: frozenset({DeploymentStatus.VALIDATING_CREDENTIAL}),
    DeploymentStatus.VALIDATING_CREDENTIAL: frozenset({
        DeploymentStatus.ATTEMPTING,
        DeploymentStatus.NEEDS_SETUP,
        DeploymentStatus.FAILED,
    }),
    DeploymentStatus.ATTEMPTING: frozenset({
        DeploymentStatus.ATTEMPTING,
        DeploymentStatus.DEPLOYED,
        DeploymentStatus.NEEDS_SETUP,
        DeploymentStatus.FAILED,
    }),
    DeploymentStatus.DEPLOYED: frozenset(),
    DeploymentStatus.NEEDS_SETUP: frozenset(),
    DeploymentStatus.FAILED: frozenset(),
}


def is_terminal(status: DeploymentStatus) -> bool:
    return DeploymentStatus(status) in TERMINAL_STATUSES


def can_transition(current: DeploymentStatus, new: DeploymentStatus) -> bool:
    return DeploymentStatus(new) in STATUS_TRANSITIONS[DeploymentStatus(current)]


def check_transition(current: DeploymentStatus, new: DeploymentStatus) -> None:
    """
    Raise InvalidTransition unless current -> new is an edge of the graph.

    Args:
        current: Status the record is in
        new: Requested status

    Raises:
        InvalidTransition: If the edge does not exist
    """
    if not can_transition(current, new):
        raise InvalidTransition(
            f"Illegal status transition {DeploymentStatus(current).value} -> {DeploymentStatus(new).value}"
        )
