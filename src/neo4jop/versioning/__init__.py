"""Neo4j version classification and upgrade path rules."""

from .version import (
    Epoch,
    VersionTriple,
    classify,
    parse_components,
    parse_version,
    versions_match,
)
from .upgrade_path import UpgradeDecision, decide_upgrade, is_downgrade

__all__ = [
    "Epoch",
    "VersionTriple",
    "classify",
    "parse_components",
    "parse_version",
    "versions_match",
    "UpgradeDecision",
    "decide_upgrade",
    "is_downgrade",
]
