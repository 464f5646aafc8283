"""Blue/Green Deployment — Health Probe.

Synchronous fixed-schedule polling of a single slot's health endpoint.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import httpx

from .config import HealthCheckPolicy

logger = logging.getLogger(__name__)


@dataclass
class HealthOutcome:
    """Result of a full polling run."""

    healthy: bool
    attempts: int
    last_status: Optional[int] = None
    last_error: str = ""

    def describe(self) -> str:
        if self.healthy:
            return f"healthy after {self.attempts} attempt(s)"
        detail = (
            f"last status {self.last_status}"
            if self.last_status is not None
            else f"last error: {self.last_error or 'no response'}"
        )
        return f"unhealthy after {self.attempts} attempt(s), {detail}"


class HealthProbe:
    """Polls an endpoint until it answers with the success status.

    A transport failure counts as a non-matching status, so ``poll`` never
    raises; an unhealthy outcome is an ordinary return value.

    Args:
        client: Optional ``httpx.Client`` to issue requests with. A client is
            created per poll when omitted.
        sleep: Function used to wait between attempts.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._sleep = sleep

    def poll(self, policy: HealthCheckPolicy) -> HealthOutcome:
        if self._client is not None:
            return self._poll_with(self._client, policy)
        with httpx.Client(timeout=policy.connect_timeout_seconds) as client:
            return self._poll_with(client, policy)

    def _poll_with(
        self, client: httpx.Client, policy: HealthCheckPolicy
    ) -> HealthOutcome:
        status: Optional[int] = None
        error = ""
        attempts = 0

        for attempt in range(1, policy.max_attempts + 1):
            attempts = attempt
            status, error = self._probe_once(client, policy)

            extra = {
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
                "status_code": status,
                "endpoint": policy.endpoint,
            }

            if policy.is_success(status):
                logger.info(
                    "Health check passed for %s on attempt %d/%d",
                    policy.endpoint,
                    attempt,
                    policy.max_attempts,
                    extra=extra,
                )
                return HealthOutcome(
                    healthy=True, attempts=attempt, last_status=status
                )

            logger.info(
                "Health check attempt %d/%d for %s: %s",
                attempt,
                policy.max_attempts,
                policy.endpoint,
                status if status is not None else error,
                extra=extra,
            )
            if attempt < policy.max_attempts:
                self._sleep(policy.interval_seconds)

        logger.warning(
            "Health check failed for %s after %d attempt(s)",
            policy.endpoint,
            attempts,
        )
        return HealthOutcome(
            healthy=False, attempts=attempts, last_status=status, last_error=error
        )

    @staticmethod
    def _probe_once(
        client: httpx.Client, policy: HealthCheckPolicy
    ) -> Tuple[Optional[int], str]:
        try:
            response = client.get(
                policy.endpoint, timeout=policy.connect_timeout_seconds
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return None, f"{type(exc).__name__}: {exc}"
        return response.status_code, ""
