"""Upgrade path rules between Neo4j versions.

Validation runs in two stages that stay separate: a generic monotonicity
check (``is_downgrade``) and then rules specific to the epochs involved.
The calendar branch does not repeat the ordering check because stage one
already covers it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from neo4jop.exceptions import ErrorReason, Neo4jOperatorError
from .version import MIN_SUPPORTED_LEGACY, VersionTriple, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpgradeDecision:
    """Outcome of checking one version transition. Never persisted."""

    current: str
    target: str
    allowed: bool
    reason: str = ""
    code: Optional[ErrorReason] = None

    @classmethod
    def allow(cls, current, target):
        return cls(current=current, target=target, allowed=True)

    @classmethod
    def reject(cls, current, target, reason, code):
        return cls(current=current, target=target, allowed=False, reason=reason, code=code)


def is_downgrade(current: VersionTriple, target: VersionTriple) -> bool:
    """Calendar always sorts above Legacy; within an epoch compare lexicographically."""
    if current.epoch != target.epoch:
        return current.is_calendar and target.is_legacy
    return current.key() > target.key()


def _check_monotonic(current: VersionTriple, target: VersionTriple) -> Optional[str]:
    if not is_downgrade(current, target):
        return None
    if current.is_calendar and target.is_legacy:
        return "downgrade from Calendar to Legacy is not supported"
    return f"downgrades are not supported (current: {current}, target: {target})"


def _check_epoch_rules(current: VersionTriple, target: VersionTriple) -> Optional[str]:
    min_major, min_minor = MIN_SUPPORTED_LEGACY

    if current.is_legacy and target.is_legacy:
        if current.major != target.major:
            return "major version upgrades are not supported"
        if current.major == min_major:
            if current.minor < min_minor or target.minor < min_minor:
                return "only Neo4j 5.26+ versions are supported"
            return None
        if current.major == 4:
            if current.minor < 4:
                return "upgrades within Neo4j 4.x require 4.4 or higher"
            return None
        return f"upgrades within Neo4j {current.major}.x are not supported"

    if current.is_legacy and target.is_calendar:
        if current.major != min_major or current.minor < min_minor:
            return (
                f"upgrade from {current} to Calendar {target} "
                f"requires Neo4j 5.26 or higher"
            )
        return None

    if current.is_calendar and target.is_calendar:
        if target.major < current.major:
            return f"downgrades are not supported (current: {current}, target: {target})"
        return None

    # Calendar to Legacy is rejected by the monotonicity stage.
    return "downgrade from Calendar to Legacy is not supported"


def decide_upgrade(current_tag: str, target_tag: str) -> UpgradeDecision:
    """Decide whether a cluster running ``current_tag`` may move to ``target_tag``."""
    try:
        current = parse_version(current_tag)
        target = parse_version(target_tag)
    except Neo4jOperatorError as e:
        return UpgradeDecision.reject(current_tag, target_tag, e.message, e.reason)

    reason = _check_monotonic(current, target)
    if reason:
        logger.debug(f"Rejected downgrade {current_tag} -> {target_tag}")
        return UpgradeDecision.reject(
            current_tag, target_tag, reason, ErrorReason.DOWNGRADE_REJECTED
        )

    reason = _check_epoch_rules(current, target)
    if reason:
        return UpgradeDecision.reject(
            current_tag, target_tag, reason, ErrorReason.UNSUPPORTED_UPGRADE_PATH
        )

    return UpgradeDecision.allow(current_tag, target_tag)
