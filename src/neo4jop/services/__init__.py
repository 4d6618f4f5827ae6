"""Cluster-facing services for the upgrade orchestrator."""

from .membership import ClusterObservation, MemberRecord, MembershipOracle
from .statefulset_manager import MemberState, StatefulSetMemberController

__all__ = [
    "ClusterObservation",
    "MemberRecord",
    "MembershipOracle",
    "MemberState",
    "StatefulSetMemberController",
]
