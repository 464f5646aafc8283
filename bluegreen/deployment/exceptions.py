"""Blue/Green Deployment — Exception Hierarchy.

Every failure a deployment run can hit is a ``DeploymentError`` carrying an
``ErrorCode``. Collaborators raise these; the orchestrator converts them into
tagged stage results at the stage boundary.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Standardized error codes for deployment failures."""

    # Before anything is created
    INVALID_PLAN = "INVALID_PLAN"
    ROUTING_LOOKUP_FAILED = "ROUTING_LOOKUP_FAILED"
    APPROVAL_DENIED = "APPROVAL_DENIED"
    APPROVAL_CANCELLED = "APPROVAL_CANCELLED"
    APPLY_FAILED = "APPLY_FAILED"

    # After the slot exists
    ROLLOUT_TIMEOUT = "ROLLOUT_TIMEOUT"
    ROLLOUT_FAILED = "ROLLOUT_FAILED"
    UNHEALTHY = "UNHEALTHY"
    PROMOTION_FAILED = "PROMOTION_FAILED"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"

    INVALID_TRANSITION = "INVALID_TRANSITION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DeploymentError(Exception):
    """Base exception for all deployment errors."""

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code


class PlanningError(DeploymentError):
    """Raised when a deployment cannot be planned."""

    default_code = ErrorCode.INVALID_PLAN


class InvalidPlanError(PlanningError):
    """Raised when plan inputs are missing or blank."""


class PlatformError(PlanningError):
    """Raised when the platform cannot report the current routing state."""

    default_code = ErrorCode.ROUTING_LOOKUP_FAILED


class ApprovalDenied(DeploymentError):
    """An approver explicitly rejected the gate."""

    default_code = ErrorCode.APPROVAL_DENIED


class ApprovalCancelled(DeploymentError):
    """The wait at a gate was interrupted by the hosting process."""

    default_code = ErrorCode.APPROVAL_CANCELLED


class ApplyError(DeploymentError):
    """The platform rejected the plan; nothing was created."""

    default_code = ErrorCode.APPLY_FAILED


class RolloutTimeoutError(DeploymentError):
    """The new workload did not finish rolling out in time."""

    default_code = ErrorCode.ROLLOUT_TIMEOUT


class RolloutFailure(DeploymentError):
    """The platform reported the rollout as failed."""

    default_code = ErrorCode.ROLLOUT_FAILED


class UnhealthyError(DeploymentError):
    """The health probe exhausted its attempts."""

    default_code = ErrorCode.UNHEALTHY


class PromotionError(DeploymentError):
    """The routing switch itself failed."""

    default_code = ErrorCode.PROMOTION_FAILED


class RollbackError(DeploymentError):
    """Undoing the new workload failed. Logged, never retried."""

    default_code = ErrorCode.ROLLBACK_FAILED


class InvalidTransitionError(DeploymentError):
    """A state transition outside the transition table was requested."""

    default_code = ErrorCode.INVALID_TRANSITION
