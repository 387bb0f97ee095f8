# src/arcweaver/__init__.py
"""Arcweaver narrative progression engine."""

__version__ = "0.1.0"

__all__ = ["__version__"]
