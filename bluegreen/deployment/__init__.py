"""Blue/Green Deployment & Pre-Promotion Rollback."""

from .config import (
    DeploymentColor,
    DeploymentState,
    Outcome,
    StageStatus,
    RoutingState,
    HealthCheckPolicy,
    DeploymentConfig,
)
from .exceptions import (
    ErrorCode,
    DeploymentError,
    PlanningError,
    InvalidPlanError,
    PlatformError,
    ApprovalDenied,
    ApprovalCancelled,
    ApplyError,
    RolloutTimeoutError,
    RolloutFailure,
    UnhealthyError,
    PromotionError,
    RollbackError,
    InvalidTransitionError,
)
from .colors import ColorSelector
from .planner import (
    ImageReference,
    DeploymentPlan,
    ProvisionPlanner,
)
from .health import (
    HealthOutcome,
    HealthProbe,
)
from .approval import (
    ApprovalDecision,
    ApprovalGate,
    ConsoleApprovalGate,
    ScriptedApprovalGate,
)
from .platform import (
    OrchestrationPlatform,
    KubectlPlatform,
    InMemoryPlatform,
)
from .state_machine import (
    TransitionRecord,
    DeploymentStateMachine,
)
from .orchestrator import (
    DeploymentAttempt,
    StageResult,
    DeploymentResult,
    DeploymentOrchestrator,
)

__all__ = [
    # Config
    "DeploymentColor",
    "DeploymentState",
    "Outcome",
    "StageStatus",
    "RoutingState",
    "HealthCheckPolicy",
    "DeploymentConfig",
    # Errors
    "ErrorCode",
    "DeploymentError",
    "PlanningError",
    "InvalidPlanError",
    "PlatformError",
    "ApprovalDenied",
    "ApprovalCancelled",
    "ApplyError",
    "RolloutTimeoutError",
    "RolloutFailure",
    "UnhealthyError",
    "PromotionError",
    "RollbackError",
    "InvalidTransitionError",
    # Selection & planning
    "ColorSelector",
    "ImageReference",
    "DeploymentPlan",
    "ProvisionPlanner",
    # Health
    "HealthOutcome",
    "HealthProbe",
    # Approval
    "ApprovalDecision",
    "ApprovalGate",
    "ConsoleApprovalGate",
    "ScriptedApprovalGate",
    # Platform
    "OrchestrationPlatform",
    "KubectlPlatform",
    "InMemoryPlatform",
    # State machine
    "TransitionRecord",
    "DeploymentStateMachine",
    # Orchestrator
    "DeploymentAttempt",
    "StageResult",
    "DeploymentResult",
    "DeploymentOrchestrator",
]
