# src/arcweaver/core/env.py
"""Environment configuration utilities."""

from __future__ import annotations

from dotenv import load_dotenv

from arcweaver.config import ArcweaverConfig, config


def load_env(override: bool = False) -> None:
    """Load environment variables from a local ``.env`` file."""
    load_dotenv(override=override)


def get_config() -> ArcweaverConfig:
    """Get the global configuration instance."""
    return config


def reload_config() -> ArcweaverConfig:
    """Re-read ``.env`` and the environment into a fresh configuration."""
    load_env(override=True)
    return ArcweaverConfig.load()


__all__ = ["load_env", "get_config", "reload_config"]
