"""Deployment Run Context.

Binds the run ID, service, release tag and target color of the
current deployment run to every log entry via contextvars.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_run_id_var: ContextVar[str] = ContextVar("run_id", default="")
_service_var: ContextVar[str] = ContextVar("service", default="")
_tag_var: ContextVar[str] = ContextVar("tag", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_run_id() -> str:
    """Generate a unique run ID using UUID4."""
    return str(uuid.uuid4())


def get_run_id() -> str:
    """Get the current run ID from context."""
    return _run_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    run_id = _run_id_var.get()
    if run_id:
        ctx["run_id"] = run_id
    service = _service_var.get()
    if service:
        ctx["service"] = service
    tag = _tag_var.get()
    if tag:
        ctx["tag"] = tag
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class DeploymentContext:
    """Context manager for run-scoped logging context.

    Example:
        with DeploymentContext(service="orders", tag="1.4.0-ab12cd3") as ctx:
            ctx.bind(color="green")
            logger.info("applying plan")  # includes run_id, service, tag, color
    """

    run_id: str = ""
    service: str = ""
    tag: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.run_id:
            self.run_id = generate_run_id()

    def __enter__(self) -> "DeploymentContext":
        self._tokens = [
            (_run_id_var, _run_id_var.set(self.run_id)),
            (_service_var, _service_var.set(self.service)),
            (_tag_var, _tag_var.set(self.tag)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since the context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds()

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
