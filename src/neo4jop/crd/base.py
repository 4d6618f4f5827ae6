"""Base classes for CRD spec and status objects."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class CRDCondition(BaseModel):
    """Kubernetes-style condition recorded on a custom resource status."""

    type: str
    status: str  # True, False, Unknown
    reason: str
    message: str = ""
    lastTransitionTime: Optional[datetime] = None


class CRDStatus(BaseModel):
    """Base class for CRD status objects with generation and conditions."""

    conditions: List[CRDCondition] = Field(default_factory=list)
    observedGeneration: Optional[int] = None

    class Config:
        extra = "allow"

    def set_condition(self, condition_type, status, reason, message="", now=None) -> CRDCondition:
        """Insert or replace the condition of ``condition_type``.

        The transition time only moves when ``status`` changes.
        """
        now = now or datetime.now(timezone.utc)
        current = next((c for c in self.conditions if c.type == condition_type), None)
        transition = now
        if current is not None and current.status == status:
            transition = current.lastTransitionTime or now

        condition = CRDCondition(
            type=condition_type,
            status=status,
            reason=reason,
            message=message,
            lastTransitionTime=transition,
        )
        self.conditions = [c for c in self.conditions if c.type != condition_type] + [condition]
        return condition


class CRDSpec(BaseModel):
    """Base class for all CRD spec objects."""

    class Config:
        extra = "forbid"
        validate_assignment = True
