"""CRD management system for the neo4jop operator."""

from .registry import CRDRegistry
from .base import CRDSpec, CRDStatus, CRDCondition

__all__ = ["CRDRegistry", "CRDSpec", "CRDStatus", "CRDCondition"]
