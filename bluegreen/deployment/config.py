"""Blue/Green Deployment — Configuration."""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_URL_TEMPLATE = (
    "http://{service}-{color}.{namespace}.svc.cluster.local:8080/actuator/health"
)


class DeploymentColor(enum.Enum):
    """One of the two parallel deployment slots."""

    BLUE = "blue"
    GREEN = "green"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["DeploymentColor"]:
        """Return the color matching *value*, or None when unrecognized."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class DeploymentState(enum.Enum):
    """States of the deployment state machine."""

    PLANNING = "planning"
    AWAITING_DEPLOY_APPROVAL = "awaiting_deploy_approval"
    APPLYING = "applying"
    ROLLOUT_WAITING = "rollout_waiting"
    HEALTH_CHECKING = "health_checking"
    AWAITING_PROMOTE_APPROVAL = "awaiting_promote_approval"
    PROMOTING = "promoting"
    PROMOTED = "promoted"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


class Outcome(enum.Enum):
    """Terminal classification of a run."""

    PROMOTED = "promoted"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


class StageStatus(enum.Enum):
    """Tag carried by every stage result."""

    OK = "ok"
    DENIED = "denied"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class RoutingState:
    """The live color of a service as reported by the platform.

    ``raw`` is None when no color has ever been promoted. Any other value is
    kept verbatim so an unexpected selector can be reported rather than lost.
    """

    raw: Optional[str] = None

    @classmethod
    def absent(cls) -> "RoutingState":
        return cls(raw=None)

    @classmethod
    def of(cls, color: DeploymentColor) -> "RoutingState":
        return cls(raw=color.value)

    @property
    def is_absent(self) -> bool:
        return not self.raw

    @property
    def color(self) -> Optional[DeploymentColor]:
        return DeploymentColor.parse(self.raw)

    @property
    def is_recognized(self) -> bool:
        return self.is_absent or self.color is not None

    def __str__(self) -> str:
        return self.raw or "absent"


@dataclass(frozen=True)
class HealthCheckPolicy:
    """Polling schedule and success criterion for the health probe."""

    endpoint: str
    max_attempts: int = 12
    interval_seconds: float = 5.0
    connect_timeout_seconds: float = 2.0
    success_status: int = 200

    def is_success(self, status: Optional[int]) -> bool:
        return status == self.success_status


@dataclass
class DeploymentConfig:
    """Deployment configuration with the reference policy as defaults."""

    namespace: str = "default"
    health_url_template: str = DEFAULT_HEALTH_URL_TEMPLATE
    health_max_attempts: int = 12
    health_interval_seconds: float = 5.0
    health_connect_timeout_seconds: float = 2.0
    rollout_timeout_seconds: int = 300
    deploy_prompt: str = "Deploy {image} to the {color} slot?"
    promote_prompt: str = "Promote {color} ({tag}) to live traffic?"

    def health_endpoint(self, service: str, color: DeploymentColor) -> str:
        return self.health_url_template.format(
            service=service,
            color=color.value,
            namespace=self.namespace,
        )

    def health_policy(
        self, service: str, color: DeploymentColor
    ) -> HealthCheckPolicy:
        """Build the health policy for the *color* slot of *service*."""
        return HealthCheckPolicy(
            endpoint=self.health_endpoint(service, color),
            max_attempts=self.health_max_attempts,
            interval_seconds=self.health_interval_seconds,
            connect_timeout_seconds=self.health_connect_timeout_seconds,
        )
