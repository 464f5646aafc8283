"""Blue/Green Deployment — Orchestrator.

Drives one release through the deployment state machine:

    PLANNING -> AWAITING_DEPLOY_APPROVAL -> APPLYING -> ROLLOUT_WAITING
    -> HEALTH_CHECKING -> AWAITING_PROMOTE_APPROVAL -> PROMOTING -> PROMOTED

Anything that goes wrong before the plan is applied ends in ABORTED. Once the
new slot exists, every failure, denial or interrupt ends in ROLLING_BACK ->
ROLLED_BACK, which undoes the new workload and leaves routing untouched.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

from bluegreen.logging_config import DeploymentContext, PerformanceTimer

from .approval import ApprovalGate
from .colors import ColorSelector
from .config import DeploymentColor, DeploymentConfig, DeploymentState, Outcome, StageStatus
from .exceptions import (
    ApprovalCancelled,
    ApprovalDenied,
    DeploymentError,
    ErrorCode,
    InvalidTransitionError,
    UnhealthyError,
)
from .health import HealthOutcome, HealthProbe
from .planner import DeploymentPlan, ImageReference, ProvisionPlanner
from .platform import OrchestrationPlatform
from .state_machine import DeploymentStateMachine, TransitionRecord

logger = logging.getLogger(__name__)

S = DeploymentState


@dataclass(frozen=True)
class DeploymentAttempt:
    """Progress of one run; ``created`` alone decides whether to roll back."""

    plan: DeploymentPlan
    created: bool = False
    promoted: bool = False

    def mark_created(self) -> "DeploymentAttempt":
        return replace(self, created=True)

    def mark_promoted(self) -> "DeploymentAttempt":
        if not self.created:
            raise InvalidTransitionError(
                "Cannot promote a slot that was never created"
            )
        return replace(self, promoted=True)

    @property
    def needs_rollback(self) -> bool:
        return self.created and not self.promoted


@dataclass(frozen=True)
class StageResult:
    """Tagged result of a single stage."""

    status: StageStatus
    reason: str = ""
    error: Optional[DeploymentError] = None

    @classmethod
    def ok(cls, reason: str = "") -> "StageResult":
        return cls(StageStatus.OK, reason)

    @classmethod
    def denied(cls, reason: str) -> "StageResult":
        return cls(StageStatus.DENIED, reason, ApprovalDenied(reason))

    @classmethod
    def cancelled(cls, reason: str) -> "StageResult":
        return cls(StageStatus.CANCELLED, reason, ApprovalCancelled(reason))

    @classmethod
    def failed(cls, reason: str, error: Optional[DeploymentError] = None) -> "StageResult":
        return cls(StageStatus.FAILED, reason, error or DeploymentError(reason))

    @property
    def is_ok(self) -> bool:
        return self.status is StageStatus.OK

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return self.error.error_code if self.error is not None else None


@dataclass
class DeploymentResult:
    """Terminal outcome of a run, surfaced to the caller."""

    outcome: Outcome
    reason: str
    run_id: str
    tag: str
    color: Optional[DeploymentColor] = None
    error_code: Optional[ErrorCode] = None
    attempt: Optional[DeploymentAttempt] = None
    health: Optional[HealthOutcome] = None
    rollback_error: Optional[str] = None
    history: List[TransitionRecord] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.PROMOTED

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "run_id": self.run_id,
            "tag": self.tag,
            "color": self.color.value if self.color else None,
            "error_code": self.error_code.value if self.error_code else None,
            "created": self.attempt.created if self.attempt else False,
            "promoted": self.attempt.promoted if self.attempt else False,
            "plan": self.attempt.plan.summary() if self.attempt else None,
            "health": (
                {
                    "healthy": self.health.healthy,
                    "attempts": self.health.attempts,
                    "last_status": self.health.last_status,
                }
                if self.health
                else None
            ),
            "rollback_error": self.rollback_error,
            "history": [record.to_dict() for record in self.history],
        }


class DeploymentOrchestrator:
    """Runs a single blue/green release end to end.

    Args:
        platform: Cluster adapter used to read and change state.
        approval_gate: Channel the two human approvals are requested on.
        config: Deployment policy. Defaults to the reference policy.
        health_probe: Probe used to validate the new slot.
        color_selector: Strategy choosing the target slot.
        planner: Builds the declarative plan.
    """

    def __init__(
        self,
        platform: OrchestrationPlatform,
        approval_gate: ApprovalGate,
        config: Optional[DeploymentConfig] = None,
        health_probe: Optional[HealthProbe] = None,
        color_selector: Optional[ColorSelector] = None,
        planner: Optional[ProvisionPlanner] = None,
    ):
        self.platform = platform
        self.approval_gate = approval_gate
        self._config = config or DeploymentConfig()
        self.health_probe = health_probe or HealthProbe()
        self.color_selector = color_selector or ColorSelector()
        self.planner = planner or ProvisionPlanner()

    @property
    def config(self) -> DeploymentConfig:
        return self._config

    def run(self, image: ImageReference) -> DeploymentResult:
        """Deploy *image* into the inactive slot and promote it if approved."""
        machine = DeploymentStateMachine()
        with DeploymentContext(service=image.service_name, tag=image.tag) as ctx:
            logger.info("Starting blue/green deployment of %s", image)

            plan, stage = self._plan(image)
            if plan is None:
                return self._abort(machine, ctx.run_id, image, None, stage)
            color = plan.target_color
            ctx.bind(color=color.value)
            machine.transition(S.AWAITING_DEPLOY_APPROVAL, f"target slot {color.value}")

            stage = self._await_approval(
                "deploy",
                self.config.deploy_prompt.format(
                    image=image.reference, color=color.value, tag=image.tag
                ),
            )
            if not stage.is_ok:
                return self._abort(machine, ctx.run_id, image, color, stage)
            machine.transition(S.APPLYING, stage.reason)

            attempt = DeploymentAttempt(plan=plan)
            attempt, stage = self._apply(attempt)
            if not attempt.created:
                return self._abort(machine, ctx.run_id, image, color, stage, attempt)
            machine.transition(S.ROLLOUT_WAITING, stage.reason)

            attempt, stage = self._wait_rollout(attempt)
            if not stage.is_ok:
                return self._roll_back(machine, ctx.run_id, attempt, stage)
            machine.transition(S.HEALTH_CHECKING, stage.reason)

            attempt, stage, health = self._check_health(attempt)
            if not stage.is_ok:
                return self._roll_back(machine, ctx.run_id, attempt, stage, health)
            machine.transition(S.AWAITING_PROMOTE_APPROVAL, stage.reason)

            stage = self._await_approval(
                "promote",
                self.config.promote_prompt.format(
                    image=image.reference, color=color.value, tag=image.tag
                ),
            )
            if not stage.is_ok:
                return self._roll_back(machine, ctx.run_id, attempt, stage, health)
            machine.transition(S.PROMOTING, stage.reason)

            attempt, stage = self._promote(attempt)
            if not attempt.promoted:
                return self._roll_back(machine, ctx.run_id, attempt, stage, health)
            machine.transition(S.PROMOTED, stage.reason)

            logger.info("Promoted %s to live traffic on %s", image, color.value)
            return DeploymentResult(
                outcome=Outcome.PROMOTED,
                reason=f"{image.tag} is live on {color.value}",
                run_id=ctx.run_id,
                tag=image.tag,
                color=color,
                attempt=attempt,
                health=health,
                history=list(machine.history),
            )

    # ── Stages ───────────────────────────────────────────────────────

    def _plan(self, image: ImageReference) -> Tuple[Optional[DeploymentPlan], StageResult]:
        try:
            current = self.platform.get_routing_state(image.service_name)
            color = self.color_selector.select(current)
            logger.info("Live color is %s, deploying to %s", current, color.value)
            plan = self.planner.plan(color, image)
        except DeploymentError as exc:
            return None, StageResult.failed(f"planning failed: {exc.message}", exc)
        except KeyboardInterrupt:
            logger.warning("Interrupted during planning")
            return None, StageResult.cancelled("planning interrupted")
        except Exception as exc:
            logger.exception("Unexpected error during planning")
            return None, StageResult.failed(f"planning failed: {exc}")
        return plan, StageResult.ok("plan ready")

    def _await_approval(self, gate: str, prompt: str) -> StageResult:
        try:
            decision = self.approval_gate.request(prompt)
        except KeyboardInterrupt:
            logger.warning("Interrupted while awaiting %s approval", gate)
            return StageResult.cancelled(f"{gate} approval cancelled")
        except Exception as exc:
            logger.exception("Approval channel failed at %s gate", gate)
            return StageResult.failed(f"{gate} approval channel failed: {exc}")

        by = f" by {decision.approver}" if decision.approver else ""
        detail = f": {decision.reason}" if decision.reason else ""
        if decision.approved:
            logger.info("%s approved%s", gate.capitalize(), by)
            return StageResult.ok(f"{gate} approved{by}")
        if decision.cancelled:
            logger.warning("%s approval cancelled%s", gate.capitalize(), detail)
            return StageResult.cancelled(f"{gate} approval cancelled{detail}")
        logger.warning("%s approval denied%s%s", gate.capitalize(), by, detail)
        return StageResult.denied(f"{gate} approval denied{by}{detail}")

    def _apply(self, attempt: DeploymentAttempt) -> Tuple[DeploymentAttempt, StageResult]:
        stage = self._guarded("apply", self.platform.apply, attempt.plan)
        if stage.is_ok:
            attempt = attempt.mark_created()
            return attempt, StageResult.ok(f"{attempt.plan.workload_name} applied")
        return attempt, stage

    def _wait_rollout(self, attempt: DeploymentAttempt) -> Tuple[DeploymentAttempt, StageResult]:
        plan = attempt.plan
        stage = self._guarded(
            "rollout",
            self.platform.wait_rollout,
            plan.service_name,
            plan.target_color,
            self.config.rollout_timeout_seconds,
        )
        if stage.is_ok:
            return attempt, StageResult.ok(f"{plan.workload_name} rolled out")
        return attempt, stage

    def _check_health(
        self, attempt: DeploymentAttempt
    ) -> Tuple[DeploymentAttempt, StageResult, Optional[HealthOutcome]]:
        plan = attempt.plan
        try:
            policy = self.config.health_policy(plan.service_name, plan.target_color)
            with PerformanceTimer("health_check"):
                outcome = self.health_probe.poll(policy)
        except KeyboardInterrupt:
            logger.warning("Interrupted during health check")
            return attempt, StageResult.cancelled("health check interrupted"), None
        except Exception as exc:
            logger.exception("Unexpected error during health check")
            reason = f"health check failed: {type(exc).__name__}: {exc}"
            return attempt, StageResult.failed(reason, UnhealthyError(reason)), None

        if outcome.healthy:
            return attempt, StageResult.ok(outcome.describe()), outcome
        reason = f"{policy.endpoint} {outcome.describe()}"
        return attempt, StageResult.failed(reason, UnhealthyError(reason)), outcome

    def _promote(self, attempt: DeploymentAttempt) -> Tuple[DeploymentAttempt, StageResult]:
        plan = attempt.plan
        stage = self._guarded(
            "promotion",
            self.platform.set_routing_state,
            plan.service_name,
            plan.target_color,
        )
        if stage.is_ok:
            return attempt.mark_promoted(), StageResult.ok(
                f"routing switched to {plan.target_color.value}"
            )
        return attempt, stage

    # ── Terminal handling ────────────────────────────────────────────

    def _abort(
        self,
        machine: DeploymentStateMachine,
        run_id: str,
        image: ImageReference,
        color: Optional[DeploymentColor],
        stage: StageResult,
        attempt: Optional[DeploymentAttempt] = None,
    ) -> DeploymentResult:
        machine.transition(S.ABORTED, stage.reason)
        logger.warning("Deployment aborted before provisioning: %s", stage.reason)
        return DeploymentResult(
            outcome=Outcome.ABORTED,
            reason=stage.reason,
            run_id=run_id,
            tag=image.tag,
            color=color,
            error_code=stage.error_code,
            attempt=attempt,
            history=list(machine.history),
        )

    def _roll_back(
        self,
        machine: DeploymentStateMachine,
        run_id: str,
        attempt: DeploymentAttempt,
        stage: StageResult,
        health: Optional[HealthOutcome] = None,
    ) -> DeploymentResult:
        if not attempt.needs_rollback:
            raise InvalidTransitionError(
                "Rollback requires a created, unpromoted slot"
            )
        plan = attempt.plan
        machine.transition(S.ROLLING_BACK, stage.reason)
        logger.warning("Rolling back %s: %s", plan.workload_name, stage.reason)

        rollback_error = None
        try:
            self.platform.rollback(plan.service_name, plan.target_color)
        except KeyboardInterrupt:
            rollback_error = "rollback interrupted"
            logger.error("Rollback of %s interrupted, not retrying", plan.workload_name)
        except Exception as exc:
            rollback_error = str(exc)
            logger.error(
                "Rollback of %s failed, not retrying: %s", plan.workload_name, exc
            )

        machine.transition(
            S.ROLLED_BACK,
            "rollback failed" if rollback_error else "rollback complete",
        )
        return DeploymentResult(
            outcome=Outcome.ROLLED_BACK,
            reason=stage.reason,
            run_id=run_id,
            tag=plan.image.tag,
            color=plan.target_color,
            error_code=stage.error_code,
            attempt=attempt,
            health=health,
            rollback_error=rollback_error,
            history=list(machine.history),
        )

    @staticmethod
    def _guarded(action: str, operation: Callable, *args) -> StageResult:
        """Call a platform operation and convert any failure into a result."""
        try:
            operation(*args)
        except DeploymentError as exc:
            return StageResult.failed(f"{action} failed: {exc.message}", exc)
        except KeyboardInterrupt:
            logger.warning("Interrupted during %s", action)
            return StageResult.cancelled(f"{action} interrupted")
        except Exception as exc:
            logger.exception("Unexpected error during %s", action)
            return StageResult.failed(f"{action} failed: {exc}")
        return StageResult.ok()
