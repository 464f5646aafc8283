"""Blue/Green Deployment — Approval Gates."""

import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Protocol, TextIO, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalDecision:
    """One of approved, denied or cancelled."""

    approved: bool
    cancelled: bool = False
    approver: str = ""
    reason: str = ""
    decided_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self):
        if self.approved and self.cancelled:
            raise ValueError("A decision cannot be both approved and cancelled")

    @classmethod
    def approve(cls, approver: str = "", reason: str = "") -> "ApprovalDecision":
        return cls(approved=True, approver=approver, reason=reason)

    @classmethod
    def deny(cls, approver: str = "", reason: str = "") -> "ApprovalDecision":
        return cls(approved=False, approver=approver, reason=reason)

    @classmethod
    def cancel(cls, reason: str = "") -> "ApprovalDecision":
        return cls(approved=False, cancelled=True, reason=reason)

    @property
    def denied(self) -> bool:
        return not self.approved and not self.cancelled


class ApprovalGate(Protocol):
    """Blocks until an external actor decides.

    Implementations never time out and never approve on their own. An
    interrupt of the hosting process may surface as ``KeyboardInterrupt``.
    """

    def request(self, prompt: str) -> ApprovalDecision:
        ...


class ConsoleApprovalGate:
    """Interactive yes/no prompt on a terminal.

    End of input is treated as cancellation; Ctrl-C propagates to the caller.
    """

    YES = ("y", "yes", "approve")
    NO = ("n", "no", "deny")

    def __init__(
        self,
        approver: str = "console",
        input_fn: Callable[[str], str] = input,
        stream: Optional[TextIO] = None,
    ):
        self.approver = approver
        self._input = input_fn
        self._stream = stream or sys.stderr

    def request(self, prompt: str) -> ApprovalDecision:
        logger.info("Awaiting approval: %s", prompt)
        while True:
            try:
                answer = self._input(f"{prompt} [y/n]: ")
            except EOFError:
                return ApprovalDecision.cancel(reason="input closed")

            answer = answer.strip().lower()
            if answer in self.YES:
                return ApprovalDecision.approve(approver=self.approver)
            if answer in self.NO:
                return ApprovalDecision.deny(approver=self.approver)
            print("Please answer 'y' or 'n'.", file=self._stream)


ScriptedEntry = Union[ApprovalDecision, BaseException]


class ScriptedApprovalGate:
    """Replays a fixed sequence of decisions.

    An entry that is an exception instance is raised instead of returned,
    which lets a driver simulate an interrupt while suspended at a gate.
    Prompts shown are recorded in order.
    """

    def __init__(self, script: Iterable[ScriptedEntry]):
        self._script = deque(script)
        self.prompts: List[str] = []

    def request(self, prompt: str) -> ApprovalDecision:
        self.prompts.append(prompt)
        if not self._script:
            raise RuntimeError(f"No scripted decision left for prompt: {prompt}")
        entry = self._script.popleft()
        if isinstance(entry, BaseException):
            raise entry
        return entry

    @property
    def remaining(self) -> int:
        return len(self._script)
