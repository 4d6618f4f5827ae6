"""Admission webhooks for Neo4jEnterpriseCluster resources."""

import logging

import kopf
from pydantic import ValidationError

from neo4jop.config import GROUP, PLURAL, VERSION
from neo4jop.models.cluster import ClusterSpec
from neo4jop.validation import apply_defaults, validate_create, validate_update

logger = logging.getLogger(__name__)


def defaulted_spec(spec):
    """Return the defaulted spec as a plain dict, or None if it cannot be parsed."""
    try:
        model = ClusterSpec.model_validate(dict(spec or {}))
    except ValidationError as e:
        logger.debug(f"Skipping defaults for unparseable spec: {e}")
        return None
    return apply_defaults(model).model_dump(mode="json", exclude_none=True)


@kopf.on.mutate(GROUP, VERSION, PLURAL, operations=["CREATE"], id="default-cluster")
def default_cluster(spec, patch, name, namespace, **kwargs):
    """Fill in defaults on new clusters; validation rejects anything still wrong."""
    defaulted = defaulted_spec(spec)
    if defaulted is None or defaulted == dict(spec):
        return
    patch["spec"] = defaulted
    logger.info(f"Applied defaults to {namespace}/{name}")


@kopf.on.validate(GROUP, VERSION, PLURAL, id="validate-cluster")
def validate_cluster(spec, operation, warnings, name, namespace, old=None, **kwargs):
    """Reject invalid clusters with every field error in a single response."""
    if operation == "CREATE":
        result = validate_create(dict(spec))
    elif operation == "UPDATE":
        old_spec = (old or {}).get("spec")
        if old_spec is None:
            result = validate_create(dict(spec))
        else:
            result = validate_update(old_spec, dict(spec))
    else:
        return

    warnings.extend(result.warnings)
    if not result.allowed:
        message = "; ".join(str(error) for error in result.errors)
        logger.info(f"Rejected {operation} of {namespace}/{name}: {message}")
        raise kopf.AdmissionError(
            f"Neo4jEnterpriseCluster {name!r} is invalid: {message}", code=422
        )
