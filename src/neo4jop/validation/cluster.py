"""Admission validation for Neo4jEnterpriseCluster objects.

``validate_create`` and ``validate_update`` are plain functions over the
objects they are given. They never mutate their input and never touch the
cluster, so they are safe to call concurrently and repeatedly.
"""

import logging
from typing import Optional, Union

from pydantic import ValidationError

from neo4jop.exceptions import ErrorReason
from neo4jop.models.cluster import ClusterSpec
from .defaults import apply_defaults
from .errors import ValidationResult, from_pydantic_error, invalid
from .image import validate_image
from .resources import (
    validate_auth,
    validate_cloud_identity,
    validate_storage,
    validate_tls,
)
from .topology import MIN_QUORUM, topology_warnings, validate_edition, validate_topology
from .upgrade import validate_upgrade_strategy, validate_version_change

logger = logging.getLogger(__name__)

SpecLike = Union[ClusterSpec, dict]


def parse_spec(spec: SpecLike, result: ValidationResult) -> Optional[ClusterSpec]:
    """Coerce a raw spec mapping into the model, recording schema errors."""
    if isinstance(spec, ClusterSpec):
        return spec
    try:
        return ClusterSpec.model_validate(dict(spec or {}))
    except ValidationError as e:
        result.extend(from_pydantic_error(e))
        return None


def _run_create_checks(spec: ClusterSpec, result: ValidationResult) -> bool:
    """Run the create checks; False when the edition check stopped everything."""
    # Edition and image failures make the remaining checks meaningless.
    edition_errors = validate_edition(spec)
    if edition_errors:
        result.extend(edition_errors)
        return False

    result.extend(validate_topology(spec))

    image_errors = validate_image(spec)
    if image_errors:
        result.extend(image_errors)
        return True

    result.extend(validate_storage(spec))
    result.extend(validate_tls(spec))
    result.extend(validate_auth(spec))
    result.extend(validate_cloud_identity(spec))

    for warning in topology_warnings(spec):
        result.warn(warning)

    return True


def validate_create(spec: SpecLike) -> ValidationResult:
    """Validate a new cluster spec and aggregate every error found."""
    result = ValidationResult()
    model = parse_spec(spec, result)
    if model is not None:
        _run_create_checks(model, result)
    return result


def validate_update(old: SpecLike, new: SpecLike) -> ValidationResult:
    """Validate a change from ``old`` to ``new``.

    Runs every create check on ``new`` and then the update-only rules, so a
    quorum reduction and a bad version jump are reported together.
    """
    result = ValidationResult()
    new_model = parse_spec(new, result)
    if new_model is None:
        return result
    if not _run_create_checks(new_model, result):
        return result

    old_model = parse_spec(old, ValidationResult())
    if old_model is None:
        logger.warning("Stored cluster spec no longer parses; skipping update rules")
        return result

    old_count = old_model.quorum_count
    new_count = new_model.quorum_count
    if new_count < old_count and new_count < MIN_QUORUM:
        result.extend(
            [
                invalid(
                    f"spec.topology.{new_model.quorum_field}",
                    new_count,
                    f"cannot reduce {new_model.quorum_field} below {MIN_QUORUM}",
                    ErrorReason.QUORUM_VIOLATION,
                )
            ]
        )

    old_tag = old_model.image.tag
    new_tag = new_model.image.tag
    if old_tag and new_tag and old_tag != new_tag:
        result.extend(validate_version_change(old_tag, new_tag))
        result.extend(validate_upgrade_strategy(new_model))

    if old_model.storage.className and new_model.storage.className != old_model.storage.className:
        result.warn(
            "changing storage.className only affects volumes created from now on; "
            "existing members keep their current volumes"
        )

    return result


class ClusterValidator:
    """Stateless facade used by the admission handlers and the CLI."""

    def default(self, spec: SpecLike) -> ClusterSpec:
        result = ValidationResult()
        model = parse_spec(spec, result)
        result.raise_for_errors()
        return apply_defaults(model)

    def validate_create(self, spec: SpecLike) -> ValidationResult:
        return validate_create(spec)

    def validate_update(self, old: SpecLike, new: SpecLike) -> ValidationResult:
        return validate_update(old, new)
