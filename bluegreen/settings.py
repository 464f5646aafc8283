"""Centralized settings for blue/green releases.

Uses pydantic-settings to load from environment variables (prefixed
BLUEGREEN_) with defaults matching the reference deployment policy.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

from bluegreen.deployment.config import DEFAULT_HEALTH_URL_TEMPLATE, DeploymentConfig


class Settings(BaseSettings):
    """Release settings loaded from environment variables."""

    # --- Service & artifact ---
    service_name: str = ""
    registry: str = ""

    # --- Kubernetes ---
    namespace: str = "default"
    kubeconfig: str = ""
    kube_context: str = ""
    kubectl_path: str = "kubectl"
    replicas: int = 2
    container_port: int = 8080

    # --- Health check ---
    health_url_template: str = DEFAULT_HEALTH_URL_TEMPLATE
    health_max_attempts: int = 12
    health_interval_seconds: float = 5.0
    health_connect_timeout_seconds: float = 2.0

    # --- Rollout ---
    rollout_timeout_seconds: int = 300

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "console"

    model_config = {
        "env_prefix": "BLUEGREEN_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @field_validator("health_url_template")
    def validate_health_url_template(cls, v: str) -> str:
        """Only {service}, {color} and {namespace} may appear in the template."""
        try:
            v.format(service="svc", color="blue", namespace="ns")
        except (KeyError, IndexError) as exc:
            raise ValueError(f"unknown placeholder {exc} in health URL template") from exc
        except ValueError as exc:
            raise ValueError(f"malformed health URL template: {exc}") from exc
        return v

    def to_deployment_config(self) -> DeploymentConfig:
        """Build the orchestrator's deployment policy from these settings."""
        return DeploymentConfig(
            namespace=self.namespace,
            health_url_template=self.health_url_template,
            health_max_attempts=self.health_max_attempts,
            health_interval_seconds=self.health_interval_seconds,
            health_connect_timeout_seconds=self.health_connect_timeout_seconds,
            rollout_timeout_seconds=self.rollout_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
