"""Version change and upgrade strategy rules, applied on update."""

from typing import List

from neo4jop.exceptions import ErrorReason
from neo4jop.versioning import decide_upgrade
from .durations import is_valid_duration
from .errors import FieldError, invalid, unsupported

STRATEGIES = ("RollingUpgrade", "Recreate")
STRATEGY_DURATIONS = ("upgradeTimeout", "healthCheckTimeout", "stabilizationTimeout")


def validate_version_change(current_tag, target_tag) -> List[FieldError]:
    decision = decide_upgrade(current_tag, target_tag)
    if decision.allowed:
        return []
    return [
        invalid(
            "spec.image.tag",
            target_tag,
            decision.reason,
            decision.code or ErrorReason.UNSUPPORTED_UPGRADE_PATH,
        )
    ]


def validate_upgrade_strategy(spec) -> List[FieldError]:
    strategy = spec.upgradeStrategy
    if strategy is None:
        return []

    errors = []
    base = "spec.upgradeStrategy"

    if strategy.strategy not in STRATEGIES:
        errors.append(unsupported(f"{base}.strategy", strategy.strategy, STRATEGIES))

    for name in STRATEGY_DURATIONS:
        value = getattr(strategy, name)
        if not is_valid_duration(value):
            errors.append(invalid(f"{base}.{name}", value, "invalid duration format"))

    if strategy.maxUnavailableDuringUpgrade < 0:
        errors.append(
            invalid(
                f"{base}.maxUnavailableDuringUpgrade",
                strategy.maxUnavailableDuringUpgrade,
                "must be non-negative",
            )
        )

    return errors
