# src/arcweaver/web/__init__.py
"""FastAPI surface for the engine."""
