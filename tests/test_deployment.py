"""Tests for blue/green deployment: selection, planning, state machine, orchestrator."""

import pytest

from bluegreen.deployment.approval import ApprovalDecision, ScriptedApprovalGate
from bluegreen.deployment.colors import ColorSelector
from bluegreen.deployment.config import (
    DeploymentColor,
    DeploymentConfig,
    DeploymentState,
    HealthCheckPolicy,
    Outcome,
    RoutingState,
    StageStatus,
)
from bluegreen.deployment.exceptions import (
    ApplyError,
    ErrorCode,
    InvalidPlanError,
    InvalidTransitionError,
    PlatformError,
    PromotionError,
    RollbackError,
    RolloutTimeoutError,
)
from bluegreen.deployment.health import HealthOutcome
from bluegreen.deployment.orchestrator import (
    DeploymentAttempt,
    DeploymentOrchestrator,
    StageResult,
)
from bluegreen.deployment.planner import DeploymentPlan, ImageReference, ProvisionPlanner
from bluegreen.deployment.platform import InMemoryPlatform
from bluegreen.deployment.state_machine import (
    TERMINAL_STATES,
    DeploymentStateMachine,
)

IMAGE = ImageReference(registry="registry.example.com", service_name="orders", tag="1.4.0-ab12cd3")


class StubProbe:
    """Health probe returning (or raising) a fixed outcome and recording policies."""

    def __init__(self, outcome: HealthOutcome):
        self.outcome = outcome
        self.policies = []

    def poll(self, policy: HealthCheckPolicy) -> HealthOutcome:
        self.policies.append(policy)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


HEALTHY = HealthOutcome(healthy=True, attempts=2, last_status=200)
UNHEALTHY = HealthOutcome(healthy=False, attempts=12, last_status=503)


# ── Config Tests ─────────────────────────────────────────────────────


class TestDeploymentConfig:
    def test_color_enum(self):
        assert len(DeploymentColor) == 2
        assert DeploymentColor.BLUE.value == "blue"
        assert DeploymentColor.GREEN.value == "green"

    def test_color_parse(self):
        assert DeploymentColor.parse("green") is DeploymentColor.GREEN
        assert DeploymentColor.parse(" BLUE ") is DeploymentColor.BLUE
        assert DeploymentColor.parse("purple") is None
        assert DeploymentColor.parse("") is None
        assert DeploymentColor.parse(None) is None

    def test_outcome_enum(self):
        assert len(Outcome) == 3
        assert Outcome.ABORTED.value == "aborted"

    def test_default_config(self):
        cfg = DeploymentConfig()
        assert cfg.namespace == "default"
        assert cfg.health_max_attempts == 12
        assert cfg.health_interval_seconds == 5.0
        assert cfg.health_connect_timeout_seconds == 2.0
        assert cfg.rollout_timeout_seconds == 300

    def test_health_policy_for_color(self):
        cfg = DeploymentConfig(namespace="shop")
        policy = cfg.health_policy("orders", DeploymentColor.GREEN)
        assert policy.endpoint == (
            "http://orders-green.shop.svc.cluster.local:8080/actuator/health"
        )
        assert policy.max_attempts == 12
        assert policy.success_status == 200

    def test_policy_success_predicate_is_exact(self):
        policy = HealthCheckPolicy(endpoint="http://x")
        assert policy.is_success(200) is True
        assert policy.is_success(204) is False
        assert policy.is_success(None) is False


class TestRoutingState:
    def test_absent(self):
        state = RoutingState.absent()
        assert state.is_absent
        assert state.color is None
        assert state.is_recognized
        assert str(state) == "absent"

    def test_of_color(self):
        state = RoutingState.of(DeploymentColor.GREEN)
        assert state.color is DeploymentColor.GREEN
        assert not state.is_absent

    def test_unrecognized(self):
        state = RoutingState(raw="purple")
        assert state.color is None
        assert not state.is_recognized


# ── Color Selector Tests ─────────────────────────────────────────────


class TestColorSelector:
    def setup_method(self):
        self.selector = ColorSelector()

    @pytest.mark.parametrize(
        "current, expected",
        [
            (RoutingState.absent(), DeploymentColor.BLUE),
            (RoutingState.of(DeploymentColor.GREEN), DeploymentColor.BLUE),
            (RoutingState.of(DeploymentColor.BLUE), DeploymentColor.GREEN),
        ],
    )
    def test_selection_table(self, current, expected):
        assert self.selector.select(current) is expected

    def test_unrecognized_falls_back_to_blue(self, caplog):
        with caplog.at_level("WARNING"):
            color = self.selector.select(RoutingState(raw="purple"))
        assert color is DeploymentColor.BLUE
        assert "purple" in caplog.text


# ── Planner Tests ────────────────────────────────────────────────────


class TestProvisionPlanner:
    def setup_method(self):
        self.planner = ProvisionPlanner()

    def test_plan(self):
        plan = self.planner.plan(DeploymentColor.GREEN, IMAGE)
        assert plan.target_color is DeploymentColor.GREEN
        assert plan.image == IMAGE
        assert plan.workload_name == "orders-green"
        assert plan.summary()["image"] == "registry.example.com/orders:1.4.0-ab12cd3"

    def test_missing_color(self):
        with pytest.raises(InvalidPlanError):
            self.planner.plan(None, IMAGE)

    def test_missing_image(self):
        with pytest.raises(InvalidPlanError):
            self.planner.plan(DeploymentColor.BLUE, None)

    def test_blank_tag(self):
        image = ImageReference(registry="r", service_name="orders", tag="  ")
        with pytest.raises(InvalidPlanError, match="tag"):
            self.planner.plan(DeploymentColor.BLUE, image)

    def test_plan_is_immutable(self):
        plan = self.planner.plan(DeploymentColor.BLUE, IMAGE)
        with pytest.raises(Exception):
            plan.target_color = DeploymentColor.GREEN


class TestImageReference:
    def test_reference(self):
        assert IMAGE.reference == "registry.example.com/orders:1.4.0-ab12cd3"
        assert str(IMAGE) == IMAGE.reference

    def test_parse_with_port(self):
        image = ImageReference.parse("registry.local:5000/team/orders:2.0.1-deadbee")
        assert image.registry == "registry.local:5000/team"
        assert image.service_name == "orders"
        assert image.tag == "2.0.1-deadbee"

    def test_parse_without_tag(self):
        with pytest.raises(InvalidPlanError):
            ImageReference.parse("registry.local:5000/orders")

    def test_parse_without_registry(self):
        with pytest.raises(InvalidPlanError):
            ImageReference.parse("orders:1.0")


# ── State Machine Tests ──────────────────────────────────────────────


class TestDeploymentStateMachine:
    def setup_method(self):
        self.machine = DeploymentStateMachine()

    def test_starts_in_planning(self):
        assert self.machine.state is DeploymentState.PLANNING
        assert not self.machine.is_terminal

    def test_records_history(self):
        self.machine.transition(DeploymentState.AWAITING_DEPLOY_APPROVAL, "planned")
        self.machine.transition(DeploymentState.ABORTED, "denied")
        assert self.machine.is_terminal
        assert [r.to_state for r in self.machine.history] == [
            DeploymentState.AWAITING_DEPLOY_APPROVAL,
            DeploymentState.ABORTED,
        ]
        assert self.machine.history[1].reason == "denied"

    def test_illegal_transition(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(DeploymentState.PROMOTED)
        assert self.machine.state is DeploymentState.PLANNING

    def test_no_rollback_before_apply(self):
        self.machine.transition(DeploymentState.AWAITING_DEPLOY_APPROVAL)
        assert not self.machine.can_transition(DeploymentState.ROLLING_BACK)

    def test_no_abort_after_apply(self):
        for state in (
            DeploymentState.AWAITING_DEPLOY_APPROVAL,
            DeploymentState.APPLYING,
            DeploymentState.ROLLOUT_WAITING,
        ):
            self.machine.transition(state)
        assert not self.machine.can_transition(DeploymentState.ABORTED)

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            DeploymentState.PROMOTED,
            DeploymentState.ROLLED_BACK,
            DeploymentState.ABORTED,
        }

    def test_visualize(self):
        adj = DeploymentStateMachine.visualize()
        assert adj["rolling_back"] == ["rolled_back"]
        assert adj["promoted"] == []


# ── Attempt & Stage Result Tests ─────────────────────────────────────


class TestDeploymentAttempt:
    def setup_method(self):
        self.plan = DeploymentPlan(target_color=DeploymentColor.BLUE, image=IMAGE)

    def test_new_attempt_needs_no_rollback(self):
        attempt = DeploymentAttempt(plan=self.plan)
        assert not attempt.created
        assert not attempt.needs_rollback

    def test_mark_created_returns_new_value(self):
        attempt = DeploymentAttempt(plan=self.plan)
        created = attempt.mark_created()
        assert created.created
        assert not attempt.created
        assert created.needs_rollback

    def test_promoted_implies_created(self):
        with pytest.raises(InvalidTransitionError):
            DeploymentAttempt(plan=self.plan).mark_promoted()

    def test_promoted_needs_no_rollback(self):
        attempt = DeploymentAttempt(plan=self.plan).mark_created().mark_promoted()
        assert attempt.promoted
        assert not attempt.needs_rollback


class TestStageResult:
    def test_ok(self):
        result = StageResult.ok()
        assert result.is_ok
        assert result.error_code is None

    def test_denied(self):
        result = StageResult.denied("no")
        assert result.status is StageStatus.DENIED
        assert result.error_code is ErrorCode.APPROVAL_DENIED

    def test_cancelled(self):
        result = StageResult.cancelled("killed")
        assert result.status is StageStatus.CANCELLED
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED

    def test_failed_keeps_error(self):
        error = ApplyError("rejected")
        result = StageResult.failed("apply failed", error)
        assert not result.is_ok
        assert result.error is error
        assert result.error_code is ErrorCode.APPLY_FAILED


# ── Platform Double Tests ────────────────────────────────────────────


class TestInMemoryPlatform:
    def test_routing_absent_by_default(self):
        platform = InMemoryPlatform()
        assert platform.get_routing_state("orders").is_absent

    def test_promotion_to_active_color_is_noop(self):
        platform = InMemoryPlatform(routing={"orders": "green"})
        platform.set_routing_state("orders", DeploymentColor.GREEN)
        platform.set_routing_state("orders", DeploymentColor.GREEN)
        assert platform.routing == {"orders": "green"}
        assert platform.routing_changes == []
        assert platform.count("set_routing_state") == 2

    def test_apply_and_rollback(self):
        platform = InMemoryPlatform()
        plan = DeploymentPlan(target_color=DeploymentColor.BLUE, image=IMAGE)
        platform.apply(plan)
        assert "orders-blue" in platform.workloads
        platform.rollback("orders", DeploymentColor.BLUE)
        assert "orders-blue" not in platform.workloads


# ── Orchestrator Tests ───────────────────────────────────────────────


class TestDeploymentOrchestrator:
    def build(self, script, probe_outcome=HEALTHY, routing=None, config=None, **failures):
        self.platform = InMemoryPlatform(routing=dict(routing or {}), **failures)
        self.gate = ScriptedApprovalGate(script)
        self.probe = StubProbe(probe_outcome)
        self.routing_before = dict(self.platform.routing)
        return DeploymentOrchestrator(
            platform=self.platform,
            approval_gate=self.gate,
            config=config,
            health_probe=self.probe,
        )

    def test_promoted_when_both_gates_approve(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()]
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.PROMOTED
        assert result.succeeded
        assert result.color is DeploymentColor.BLUE
        assert result.tag == "1.4.0-ab12cd3"
        assert self.platform.routing["orders"] == "blue"
        assert self.platform.count("rollback") == 0
        assert result.attempt.created and result.attempt.promoted
        assert result.health is HEALTHY

    def test_promoted_history_walks_every_state(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()]
        )
        result = orchestrator.run(IMAGE)
        assert [r.to_state for r in result.history] == [
            DeploymentState.AWAITING_DEPLOY_APPROVAL,
            DeploymentState.APPLYING,
            DeploymentState.ROLLOUT_WAITING,
            DeploymentState.HEALTH_CHECKING,
            DeploymentState.AWAITING_PROMOTE_APPROVAL,
            DeploymentState.PROMOTING,
            DeploymentState.PROMOTED,
        ]

    def test_deploys_into_inactive_slot(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()],
            routing={"orders": "blue"},
        )
        result = orchestrator.run(IMAGE)
        assert result.color is DeploymentColor.GREEN
        assert ("apply", "orders-green") in self.platform.calls
        assert "orders-green" in self.probe.policies[0].endpoint
        assert self.platform.routing["orders"] == "green"

    def test_prompts_name_image_and_color(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()]
        )
        orchestrator.run(IMAGE)
        deploy_prompt, promote_prompt = self.gate.prompts
        assert IMAGE.reference in deploy_prompt
        assert "blue" in deploy_prompt
        assert "1.4.0-ab12cd3" in promote_prompt

    def test_deny_at_deploy_gate_aborts_without_rollback(self):
        orchestrator = self.build([ApprovalDecision.deny(approver="ops")])
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.APPROVAL_DENIED
        assert "denied by ops" in result.reason
        assert self.platform.count("rollback") == 0
        assert self.platform.count("apply") == 0
        assert self.platform.routing == self.routing_before

    def test_cancel_at_deploy_gate_aborts(self):
        orchestrator = self.build([KeyboardInterrupt()])
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED
        assert self.platform.count("rollback") == 0

    def test_cancelled_decision_at_deploy_gate_aborts(self):
        orchestrator = self.build([ApprovalDecision.cancel(reason="input closed")])
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED

    def test_unhealthy_rolls_back_new_color_only(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            probe_outcome=UNHEALTHY,
            routing={"orders": "green"},
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.color is DeploymentColor.BLUE
        assert result.error_code is ErrorCode.UNHEALTHY
        assert self.platform.count("rollback") == 1
        assert ("rollback", "orders-blue") in self.platform.calls
        assert self.platform.routing == self.routing_before
        assert self.platform.count("set_routing_state") == 0
        assert self.gate.prompts and len(self.gate.prompts) == 1

    def test_cancel_at_promote_gate_rolls_back(self):
        orchestrator = self.build([ApprovalDecision.approve(), KeyboardInterrupt()])
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED
        assert result.attempt.created
        assert self.platform.count("rollback") == 1
        assert self.platform.routing == self.routing_before

    def test_deny_at_promote_gate_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.deny()]
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.APPROVAL_DENIED
        assert self.platform.count("rollback") == 1

    def test_rollout_timeout_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            fail_rollout=RolloutTimeoutError("not ready in 300s"),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.ROLLOUT_TIMEOUT
        assert self.platform.count("rollback") == 1
        assert self.probe.policies == []

    def test_unexpected_rollout_error_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            fail_rollout=OSError("kubectl vanished"),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.INTERNAL_ERROR
        assert self.platform.count("rollback") == 1

    def test_apply_error_aborts_without_rollback(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            fail_apply=ApplyError("admission webhook denied"),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.APPLY_FAILED
        assert not result.attempt.created
        assert self.platform.count("rollback") == 0

    def test_promotion_error_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()],
            routing={"orders": "blue"},
            fail_promotion=PromotionError("patch rejected"),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.PROMOTION_FAILED
        assert not result.attempt.promoted
        assert ("rollback", "orders-green") in self.platform.calls
        assert self.platform.routing == {"orders": "blue"}

    def test_rollback_failure_is_reported_not_retried(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            probe_outcome=UNHEALTHY,
            fail_rollback=RollbackError("no rollout history found"),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert "no rollout history" in result.rollback_error
        assert self.platform.count("rollback") == 1
        assert result.history[-1].to_state is DeploymentState.ROLLED_BACK

    def test_routing_lookup_failure_aborts_before_gate(self):
        orchestrator = self.build(
            [], fail_routing_lookup=PlatformError("forbidden")
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.ROUTING_LOOKUP_FAILED
        assert self.gate.prompts == []

    def test_invalid_image_aborts(self):
        orchestrator = self.build([])
        image = ImageReference(registry="", service_name="orders", tag="1.0.0")
        result = orchestrator.run(image)
        assert result.outcome is Outcome.ABORTED
        assert result.error_code is ErrorCode.INVALID_PLAN

    def test_result_to_dict(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()], probe_outcome=UNHEALTHY
        )
        data = orchestrator.run(IMAGE).to_dict()
        assert data["outcome"] == "rolled_back"
        assert data["color"] == "blue"
        assert data["error_code"] == "UNHEALTHY"
        assert data["created"] is True
        assert data["promoted"] is False
        assert data["health"]["attempts"] == 12
        assert data["history"][-1]["to"] == "rolled_back"
        assert data["run_id"]
        assert data["plan"] == {
            "service": "orders",
            "color": "blue",
            "workload": "orders-blue",
            "image": "registry.example.com/orders:1.4.0-ab12cd3",
        }

    def test_interrupt_during_rollout_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()], fail_rollout=KeyboardInterrupt()
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED
        assert self.platform.count("rollback") == 1
        assert self.probe.policies == []

    def test_interrupt_during_health_check_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()], probe_outcome=KeyboardInterrupt()
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.APPROVAL_CANCELLED
        assert self.platform.count("rollback") == 1
        assert self.gate.remaining == 0

    def test_bad_health_url_template_rolls_back(self):
        config = DeploymentConfig(
            health_url_template="http://{service}-{color}:{port}/health"
        )
        orchestrator = self.build([ApprovalDecision.approve()], config=config)
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.error_code is ErrorCode.UNHEALTHY
        assert "KeyError" in result.reason
        assert ("rollback", "orders-blue") in self.platform.calls
        assert self.platform.routing == {}

    def test_unexpected_probe_error_rolls_back(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()], probe_outcome=RuntimeError("socket gone")
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert "socket gone" in result.reason
        assert self.platform.count("rollback") == 1

    def test_interrupt_during_rollback_still_terminates(self):
        orchestrator = self.build(
            [ApprovalDecision.approve()],
            probe_outcome=UNHEALTHY,
            fail_rollback=KeyboardInterrupt(),
        )
        result = orchestrator.run(IMAGE)
        assert result.outcome is Outcome.ROLLED_BACK
        assert result.rollback_error == "rollback interrupted"
        assert result.error_code is ErrorCode.UNHEALTHY
        assert result.history[-1].to_state is DeploymentState.ROLLED_BACK

    def test_transitions_logged_with_state(self, caplog):
        orchestrator = self.build(
            [ApprovalDecision.approve(), ApprovalDecision.approve()]
        )
        with caplog.at_level("INFO", logger="bluegreen.deployment.state_machine"):
            orchestrator.run(IMAGE)
        states = [r.state for r in caplog.records if hasattr(r, "state")]
        assert states[0] == "awaiting_deploy_approval"
        assert states[-1] == "promoted"
