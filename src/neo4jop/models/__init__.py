"""Pydantic models for all CRDs."""

# Import all models to ensure they're registered
from . import cluster

__all__ = ["cluster"]
