"""Blue/Green Deployment — Color Selection."""

import logging

from .config import DeploymentColor, RoutingState

logger = logging.getLogger(__name__)


class ColorSelector:
    """Picks the slot a new release is deployed into.

    The inactive slot is chosen relative to the live one. A service that has
    never been promoted always bootstraps into BLUE.
    """

    def select(self, current: RoutingState) -> DeploymentColor:
        if current.color is DeploymentColor.BLUE:
            return DeploymentColor.GREEN
        if not current.is_recognized:
            logger.warning(
                "Unrecognized live color %r, falling back to %s",
                current.raw,
                DeploymentColor.BLUE.value,
            )
        return DeploymentColor.BLUE
