"""Blue/Green Deployment — Provision Planner."""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DeploymentColor
from .exceptions import InvalidPlanError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageReference:
    """An already-pushed container image."""

    registry: str
    service_name: str
    tag: str

    @property
    def reference(self) -> str:
        return f"{self.registry}/{self.service_name}:{self.tag}"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse ``registry/name:tag``.

        The last path segment is the service name; everything before it is
        the registry (which may itself contain slashes and a port).
        """
        path, sep, tag = reference.rpartition(":")
        if not sep or "/" in tag:
            raise InvalidPlanError(f"Image reference {reference!r} has no tag")
        registry, sep, name = path.rpartition("/")
        if not sep:
            raise InvalidPlanError(
                f"Image reference {reference!r} has no registry"
            )
        return cls(registry=registry, service_name=name, tag=tag)

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class DeploymentPlan:
    """Declarative target state for one run."""

    target_color: DeploymentColor
    image: ImageReference

    @property
    def service_name(self) -> str:
        return self.image.service_name

    @property
    def workload_name(self) -> str:
        return workload_name(self.service_name, self.target_color)

    def summary(self) -> dict:
        return {
            "service": self.service_name,
            "color": self.target_color.value,
            "workload": self.workload_name,
            "image": self.image.reference,
        }


def workload_name(service_name: str, color: DeploymentColor) -> str:
    """Name of the workload backing the *color* slot of a service."""
    return f"{service_name}-{color.value}"


class ProvisionPlanner:
    """Builds the plan handed to the platform's apply operation."""

    def plan(
        self,
        color: Optional[DeploymentColor],
        image: Optional[ImageReference],
    ) -> DeploymentPlan:
        if not isinstance(color, DeploymentColor):
            raise InvalidPlanError("Deployment color is not set")
        if image is None:
            raise InvalidPlanError("Image reference is not set")

        for field_name in ("registry", "service_name", "tag"):
            value = getattr(image, field_name)
            if not value or not str(value).strip():
                raise InvalidPlanError(
                    f"Image reference field '{field_name}' is empty"
                )

        plan = DeploymentPlan(target_color=color, image=image)
        logger.info(
            "Planned %s into slot %s (workload %s)",
            image.reference,
            color.value,
            plan.workload_name,
        )
        return plan
