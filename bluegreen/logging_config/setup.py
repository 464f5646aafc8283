"""Logging Setup.

One-call configuration for structured logging of deployment runs.
Supports JSON output for pipelines and colored console for operators.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from bluegreen.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig, LogLevel
from bluegreen.logging_config.context import get_context_dict

# Deployment attributes callers pass through ``extra=``
EXTRA_FIELDS = ("state", "attempt", "max_attempts", "status_code", "endpoint", "duration_ms")


def _record_extras(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in EXTRA_FIELDS
        if getattr(record, key, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter.

    One JSON object per line: record time, level, logger, message, the bound
    run context (run_id, service, tag, color) and any deployment extras such
    as the state entered or the health-check attempt.
    """

    def __init__(self, service_name: str = "bluegreen", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service_name": self.service_name,
        }

        if self.include_caller:
            log_entry["function"] = record.funcName
            log_entry["line"] = record.lineno

        log_entry.update(get_context_dict())
        log_entry.update(_record_extras(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for an operator watching a release.

    A record that entered a state is tagged ``[state]`` and health-check
    records carry ``(attempt n/max)``, so the run reads as a timeline.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    STATE_COLOR = "\033[1;34m"  # Bold blue
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%H:%M:%S.%f"
        )[:-3]

        state = getattr(record, "state", None)
        state_str = f"{self.STATE_COLOR}[{state}]{self.RESET} " if state else ""

        attempt = getattr(record, "attempt", None)
        attempt_str = ""
        if attempt is not None:
            attempt_str = f" (attempt {attempt}/{getattr(record, 'max_attempts', '?')})"

        ctx = get_context_dict()
        ctx_str = ""
        if ctx:
            parts = [f"{k}={v}" for k, v in ctx.items()]
            ctx_str = f" [{', '.join(parts)}]"

        line = (
            f"{color}{timestamp} {record.levelname:8s}{self.RESET} {state_str}"
            f"{record.name}: {record.getMessage()}{attempt_str}{ctx_str}"
        )

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)

        return line


def configure_logging(
    config: Optional[LoggingConfig] = None, env_override: bool = True
) -> None:
    """Configure structured logging for deployment runs.

    Call once at startup. Sets up the root logger with the appropriate
    formatter (JSON or console) and log level.

    Args:
        config: Logging configuration. Uses defaults if not provided.
                Log level can be overridden with BLUEGREEN_LOG_LEVEL env var.
                Log format can be overridden with BLUEGREEN_LOG_FORMAT env var.
        env_override: Apply the BLUEGREEN_LOG_* overrides. Callers that have
                already resolved them (the CLI) pass False.
    """
    config = config or DEFAULT_LOGGING_CONFIG

    if env_override:
        config = _apply_env_overrides(config)

    if config.format == LogFormat.JSON:
        formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter()

    # stderr keeps stdout free for --json output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    env_level = os.environ.get("BLUEGREEN_LOG_LEVEL", "").upper()
    if env_level and env_level in LogLevel.__members__:
        config = replace(config, level=LogLevel(env_level))

    env_format = os.environ.get("BLUEGREEN_LOG_FORMAT", "").lower()
    if env_format and env_format in [f.value for f in LogFormat]:
        config = replace(config, format=LogFormat(env_format))
    return config


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Convenience wrapper that returns a standard library logger.
    When configure_logging() has been called, all output goes through
    the configured formatter.
    """
    return logging.getLogger(name)
