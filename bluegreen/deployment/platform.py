"""Blue/Green Deployment — Orchestration Platform Adapters.

The orchestrator talks to the cluster only through ``OrchestrationPlatform``.
``KubectlPlatform`` drives Kubernetes with the ``kubectl`` CLI; the routing
state is the ``color`` label of the Service selector. ``InMemoryPlatform``
keeps everything in process for dry runs and tests.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from bluegreen.logging_config import log_performance

from .config import DeploymentColor, RoutingState
from .exceptions import (
    ApplyError,
    PlatformError,
    PromotionError,
    RollbackError,
    RolloutFailure,
    RolloutTimeoutError,
)
from .planner import DeploymentPlan, workload_name

logger = logging.getLogger(__name__)

HEALTH_PATH = "/actuator/health"
COMMAND_TIMEOUT_SECONDS = 60
# Extra time kubectl gets beyond its own --timeout before we kill it
ROLLOUT_GRACE_SECONDS = 30


class OrchestrationPlatform(Protocol):
    """Operations the orchestrator needs from the cluster."""

    def get_routing_state(self, service_name: str) -> RoutingState:
        ...

    def apply(self, plan: DeploymentPlan) -> None:
        ...

    def wait_rollout(
        self, service_name: str, color: DeploymentColor, timeout_seconds: int
    ) -> None:
        ...

    def set_routing_state(self, service_name: str, color: DeploymentColor) -> None:
        ...

    def rollback(self, service_name: str, color: DeploymentColor) -> None:
        ...


class KubectlPlatform:
    """Kubernetes adapter shelling out to ``kubectl``."""

    def __init__(
        self,
        namespace: str = "default",
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        kubectl: str = "kubectl",
        replicas: int = 2,
        container_port: int = 8080,
    ):
        self.namespace = namespace
        self.kubeconfig = kubeconfig
        self.context = context
        self.kubectl = kubectl
        self.replicas = replicas
        self.container_port = container_port

    # ── Manifests ────────────────────────────────────────────────────

    def render_deployment(self, plan: DeploymentPlan) -> dict:
        """Render the apps/v1 Deployment realizing *plan*."""
        labels = {
            "app": plan.service_name,
            "color": plan.target_color.value,
        }
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": plan.workload_name,
                "namespace": self.namespace,
                "labels": {**labels, "version": plan.image.tag},
            },
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": {**labels, "version": plan.image.tag}},
                    "spec": {
                        "containers": [
                            {
                                "name": plan.service_name,
                                "image": plan.image.reference,
                                "ports": [{"containerPort": self.container_port}],
                                "readinessProbe": {
                                    "httpGet": {
                                        "path": HEALTH_PATH,
                                        "port": self.container_port,
                                    },
                                    "periodSeconds": 5,
                                    "timeoutSeconds": 2,
                                },
                            }
                        ]
                    },
                },
            },
        }

    def render_service(self, service_name: str, color: DeploymentColor) -> dict:
        """Render the live Service whose selector routes traffic to *color*."""
        return self._service(service_name, service_name, color, port=80)

    def render_slot_service(self, plan: DeploymentPlan) -> dict:
        """Render the per-slot Service the health check addresses directly."""
        return self._service(
            plan.workload_name,
            plan.service_name,
            plan.target_color,
            port=self.container_port,
        )

    def render_slot(self, plan: DeploymentPlan) -> dict:
        """Deployment plus slot Service as one kubectl List."""
        return {
            "apiVersion": "v1",
            "kind": "List",
            "items": [self.render_deployment(plan), self.render_slot_service(plan)],
        }

    def _service(
        self, name: str, service_name: str, color: DeploymentColor, port: int
    ) -> dict:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": name,
                "namespace": self.namespace,
                "labels": {"app": service_name},
            },
            "spec": {
                "selector": {"app": service_name, "color": color.value},
                "ports": [
                    {
                        "port": port,
                        "targetPort": self.container_port,
                        "protocol": "TCP",
                    }
                ],
            },
        }

    # ── Platform operations ──────────────────────────────────────────

    def get_routing_state(self, service_name: str) -> RoutingState:
        try:
            result = self._run(
                ["get", "service", service_name, "-o", "jsonpath={.spec.selector.color}"]
            )
        except subprocess.TimeoutExpired as exc:
            raise PlatformError(
                f"Routing lookup of {service_name} timed out after {exc.timeout}s"
            ) from exc
        if result.returncode != 0:
            if "NotFound" in result.stderr:
                logger.info("Service %s not found, no live color yet", service_name)
                return RoutingState.absent()
            raise PlatformError(
                f"Could not read routing state of {service_name}: "
                f"{result.stderr.strip()}"
            )
        raw = result.stdout.strip()
        return RoutingState(raw=raw or None)

    @log_performance(threshold_ms=60_000)
    def apply(self, plan: DeploymentPlan) -> None:
        manifest = json.dumps(self.render_slot(plan))
        try:
            result = self._run(["apply", "-f", "-"], input_text=manifest)
        except subprocess.TimeoutExpired as exc:
            raise ApplyError(f"kubectl apply timed out after {exc.timeout}s") from exc
        if result.returncode != 0:
            raise ApplyError(
                f"kubectl apply of {plan.workload_name} failed: {result.stderr.strip()}"
            )
        logger.info("Applied %s: %s", plan.workload_name, result.stdout.strip())

    @log_performance(threshold_ms=300_000)
    def wait_rollout(
        self, service_name: str, color: DeploymentColor, timeout_seconds: int
    ) -> None:
        name = workload_name(service_name, color)
        try:
            result = self._run(
                ["rollout", "status", f"deployment/{name}", f"--timeout={timeout_seconds}s"],
                timeout=timeout_seconds + ROLLOUT_GRACE_SECONDS,
            )
        except subprocess.TimeoutExpired as exc:
            raise RolloutTimeoutError(
                f"Rollout of {name} did not finish within {timeout_seconds}s"
            ) from exc

        if result.returncode == 0:
            logger.info("Rollout of %s complete", name)
            return
        stderr = result.stderr.strip()
        if "timed out" in stderr or "progress deadline" in stderr:
            raise RolloutTimeoutError(
                f"Rollout of {name} did not finish within {timeout_seconds}s: {stderr}"
            )
        raise RolloutFailure(f"Rollout of {name} failed: {stderr}")

    def set_routing_state(self, service_name: str, color: DeploymentColor) -> None:
        manifest = json.dumps(self.render_service(service_name, color))
        try:
            result = self._run(["apply", "-f", "-"], input_text=manifest)
        except subprocess.TimeoutExpired as exc:
            raise PromotionError(
                f"Routing switch of {service_name} timed out after {exc.timeout}s"
            ) from exc
        if result.returncode != 0:
            raise PromotionError(
                f"Routing switch of {service_name} to {color.value} failed: "
                f"{result.stderr.strip()}"
            )
        logger.info("Service %s now routes to %s", service_name, color.value)

    def rollback(self, service_name: str, color: DeploymentColor) -> None:
        name = workload_name(service_name, color)
        try:
            result = self._run(["rollout", "undo", f"deployment/{name}"])
        except subprocess.TimeoutExpired as exc:
            raise RollbackError(f"Rollback of {name} timed out after {exc.timeout}s") from exc
        if result.returncode != 0:
            raise RollbackError(f"Rollback of {name} failed: {result.stderr.strip()}")
        logger.info("Rolled back %s", name)

    # ── Internal helpers ─────────────────────────────────────────────

    def _base_command(self) -> List[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            cmd.extend(["--context", self.context])
        cmd.extend(["--namespace", self.namespace])
        return cmd

    def _run(
        self,
        args: Sequence[str],
        input_text: Optional[str] = None,
        timeout: int = COMMAND_TIMEOUT_SECONDS,
    ) -> subprocess.CompletedProcess:
        cmd = self._base_command() + list(args)
        logger.debug("Running %s", " ".join(cmd))
        return subprocess.run(
            cmd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )


@dataclass
class InMemoryPlatform:
    """Platform double holding routing and workloads in memory.

    Every call is appended to ``calls``. Setting one of the ``fail_*`` fields
    to an exception instance makes the matching operation raise it.
    """

    routing: Dict[str, str] = field(default_factory=dict)
    workloads: Dict[str, str] = field(default_factory=dict)
    calls: List[Tuple[str, ...]] = field(default_factory=list)
    routing_changes: List[Tuple[str, str]] = field(default_factory=list)
    fail_routing_lookup: Optional[Exception] = None
    fail_apply: Optional[Exception] = None
    fail_rollout: Optional[Exception] = None
    fail_promotion: Optional[Exception] = None
    fail_rollback: Optional[Exception] = None

    def get_routing_state(self, service_name: str) -> RoutingState:
        self.calls.append(("get_routing_state", service_name))
        if self.fail_routing_lookup is not None:
            raise self.fail_routing_lookup
        return RoutingState(raw=self.routing.get(service_name))

    def apply(self, plan: DeploymentPlan) -> None:
        self.calls.append(("apply", plan.workload_name))
        if self.fail_apply is not None:
            raise self.fail_apply
        self.workloads[plan.workload_name] = plan.image.reference
        logger.info("[dry-run] applied %s (%s)", plan.workload_name, plan.image)

    def wait_rollout(
        self, service_name: str, color: DeploymentColor, timeout_seconds: int
    ) -> None:
        self.calls.append(("wait_rollout", workload_name(service_name, color)))
        if self.fail_rollout is not None:
            raise self.fail_rollout

    def set_routing_state(self, service_name: str, color: DeploymentColor) -> None:
        self.calls.append(("set_routing_state", service_name, color.value))
        if self.fail_promotion is not None:
            raise self.fail_promotion
        if self.routing.get(service_name) == color.value:
            logger.info("[dry-run] %s already routes to %s", service_name, color.value)
            return
        self.routing[service_name] = color.value
        self.routing_changes.append((service_name, color.value))
        logger.info("[dry-run] %s now routes to %s", service_name, color.value)

    def rollback(self, service_name: str, color: DeploymentColor) -> None:
        name = workload_name(service_name, color)
        self.calls.append(("rollback", name))
        if self.fail_rollback is not None:
            raise self.fail_rollback
        self.workloads.pop(name, None)
        logger.info("[dry-run] rolled back %s", name)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)
