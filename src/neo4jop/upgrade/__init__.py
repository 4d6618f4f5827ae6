"""Rolling upgrade orchestration."""

from .orchestrator import (
    MemberStep,
    Phase,
    RollingUpgradeOrchestrator,
    Step,
    StepResult,
    UpgradeEvent,
)

__all__ = [
    "MemberStep",
    "Phase",
    "RollingUpgradeOrchestrator",
    "Step",
    "StepResult",
    "UpgradeEvent",
]
