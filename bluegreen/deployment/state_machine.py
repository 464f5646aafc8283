"""Blue/Green Deployment — State Machine."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from .config import DeploymentState
from .exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)

S = DeploymentState

TRANSITIONS: Dict[DeploymentState, Tuple[DeploymentState, ...]] = {
    S.PLANNING: (S.AWAITING_DEPLOY_APPROVAL, S.ABORTED),
    S.AWAITING_DEPLOY_APPROVAL: (S.APPLYING, S.ABORTED),
    S.APPLYING: (S.ROLLOUT_WAITING, S.ABORTED),
    S.ROLLOUT_WAITING: (S.HEALTH_CHECKING, S.ROLLING_BACK),
    S.HEALTH_CHECKING: (S.AWAITING_PROMOTE_APPROVAL, S.ROLLING_BACK),
    S.AWAITING_PROMOTE_APPROVAL: (S.PROMOTING, S.ROLLING_BACK),
    S.PROMOTING: (S.PROMOTED, S.ROLLING_BACK),
    S.ROLLING_BACK: (S.ROLLED_BACK,),
    S.PROMOTED: (),
    S.ROLLED_BACK: (),
    S.ABORTED: (),
}

TERMINAL_STATES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


@dataclass
class TransitionRecord:
    """Audit record for a state transition."""

    from_state: DeploymentState = S.PLANNING
    to_state: DeploymentState = S.PLANNING
    reason: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "from": self.from_state.value,
            "to": self.to_state.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


class DeploymentStateMachine:
    """Tracks the current state of one run and enforces the transition table."""

    def __init__(self, initial: DeploymentState = S.PLANNING):
        self._state = initial
        self.history: List[TransitionRecord] = []

    @property
    def state(self) -> DeploymentState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition(self, target: DeploymentState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: DeploymentState, reason: str = "") -> TransitionRecord:
        """Move to *target*, raising if the table does not allow it."""
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Illegal transition {self._state.value} -> {target.value}"
            )
        record = TransitionRecord(
            from_state=self._state, to_state=target, reason=reason
        )
        self.history.append(record)
        self._state = target
        logger.info(
            "%s -> %s: %s",
            record.from_state.value,
            target.value,
            reason or "-",
            extra={"state": target.value},
        )
        return record

    @staticmethod
    def visualize() -> Dict[str, List[str]]:
        """Return an adjacency-list representation of the transition table."""
        return {
            state.value: [t.value for t in targets]
            for state, targets in TRANSITIONS.items()
        }
