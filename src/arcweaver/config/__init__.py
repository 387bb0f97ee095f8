# src/arcweaver/config/__init__.py
"""Configuration entry points."""

from .config import (
    ArcweaverConfig,
    ControllerConfig,
    DatabaseConfig,
    LeakageConfig,
    LLMConfig,
    PlannerConfig,
    RetryConfig,
    SystemConfig,
    config,
)

__all__ = [
    "ArcweaverConfig",
    "ControllerConfig",
    "DatabaseConfig",
    "LeakageConfig",
    "LLMConfig",
    "PlannerConfig",
    "RetryConfig",
    "SystemConfig",
    "config",
]
