"""Blue/green release orchestration for a single service."""

__version__ = "0.1.0"
