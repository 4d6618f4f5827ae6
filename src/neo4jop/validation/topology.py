"""Edition and topology rules."""

from typing import List

from neo4jop.exceptions import ErrorReason
from .errors import FieldError, invalid, required

SUPPORTED_EDITION = "enterprise"
MIN_QUORUM = 3
MAX_RECOMMENDED_PRIMARIES = 7


def validate_edition(spec) -> List[FieldError]:
    if not spec.edition:
        return [required("spec.edition", f"edition must be '{SUPPORTED_EDITION}'")]
    if spec.edition != SUPPORTED_EDITION:
        return [
            invalid(
                "spec.edition",
                spec.edition,
                f"only '{SUPPORTED_EDITION}' edition is supported",
            )
        ]
    return []


def validate_topology(spec) -> List[FieldError]:
    """Quorum needs at least three members and an odd count."""
    errors = []
    name = spec.quorum_field
    path = f"spec.topology.{name}"
    count = spec.quorum_count

    if count < MIN_QUORUM:
        errors.append(
            invalid(
                path,
                count,
                f"{name} must be at least {MIN_QUORUM} for quorum",
                ErrorReason.QUORUM_VIOLATION,
            )
        )
    elif count % 2 == 0:
        errors.append(
            invalid(
                path,
                count,
                f"{name} must be odd to maintain quorum",
                ErrorReason.QUORUM_VIOLATION,
            )
        )

    secondaries = spec.topology.secondaries
    if secondaries is not None and secondaries < 0:
        errors.append(
            invalid("spec.topology.secondaries", secondaries, "secondaries cannot be negative")
        )

    return errors


def topology_warnings(spec) -> List[str]:
    warnings = []
    if spec.quorum_count > MAX_RECOMMENDED_PRIMARIES:
        warnings.append(
            f"{spec.quorum_count} {spec.quorum_field} exceeds the recommended maximum of "
            f"{MAX_RECOMMENDED_PRIMARIES}; large consensus groups slow down writes"
        )
    return warnings
