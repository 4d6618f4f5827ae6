"""Image rules."""

from typing import List

from neo4jop.exceptions import ErrorReason, Neo4jOperatorError
from neo4jop.versioning import parse_version
from .errors import FieldError, invalid, required, unsupported

PULL_POLICIES = ("Always", "Never", "IfNotPresent")


def validate_image(spec) -> List[FieldError]:
    errors = []
    image = spec.image

    if not image.repo:
        errors.append(required("spec.image.repo", "image repository must be specified"))

    if not image.tag:
        errors.append(required("spec.image.tag", "image tag must be specified"))
    else:
        try:
            version = parse_version(image.tag)
        except Neo4jOperatorError as e:
            errors.append(invalid("spec.image.tag", image.tag, e.message, e.reason))
        else:
            if not version.is_supported:
                errors.append(
                    invalid(
                        "spec.image.tag",
                        image.tag,
                        "only Neo4j 5.26+ versions are supported",
                        ErrorReason.UNSUPPORTED_VERSION,
                    )
                )

    if image.pullPolicy and image.pullPolicy not in PULL_POLICIES:
        errors.append(unsupported("spec.image.pullPolicy", image.pullPolicy, PULL_POLICIES))

    return errors
