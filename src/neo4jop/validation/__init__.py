"""Admission gate: defaulting and validation of cluster specs."""

from .cluster import ClusterValidator, validate_create, validate_update
from .defaults import apply_defaults
from .errors import FieldError, ValidationResult

__all__ = [
    "ClusterValidator",
    "FieldError",
    "ValidationResult",
    "apply_defaults",
    "validate_create",
    "validate_update",
]
