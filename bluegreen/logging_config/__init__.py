"""Structured Logging & Run Context.

Provides structured JSON logging, per-run context binding,
and performance timing for deployment runs.
"""

from bluegreen.logging_config.config import LogFormat, LoggingConfig, LogLevel
from bluegreen.logging_config.context import DeploymentContext, generate_run_id
from bluegreen.logging_config.performance import PerformanceTimer, log_performance
from bluegreen.logging_config.setup import configure_logging, get_logger

__all__ = [
    "DeploymentContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "configure_logging",
    "generate_run_id",
    "get_logger",
    "log_performance",
]
