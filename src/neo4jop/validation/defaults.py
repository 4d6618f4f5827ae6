"""Defaulting pass applied to new clusters before validation."""

import logging

from neo4jop.models.cluster import AuthSpec, ClusterSpec, ServiceSpec, TLSSpec
from .topology import MIN_QUORUM, SUPPORTED_EDITION

logger = logging.getLogger(__name__)

DEFAULT_PULL_POLICY = "IfNotPresent"
DEFAULT_TLS_MODE = "disabled"
DEFAULT_ISSUER_KIND = "ClusterIssuer"
DEFAULT_AUTH_PROVIDER = "native"
DEFAULT_SERVICE_TYPE = "ClusterIP"
DEFAULT_RETENTION_POLICY = "Delete"


def _corrected_quorum(count):
    if count is None or count < MIN_QUORUM:
        return MIN_QUORUM
    if count % 2 == 0:
        return count + 1
    return count


def apply_defaults(spec: ClusterSpec) -> ClusterSpec:
    """Return a copy of ``spec`` with unset fields defaulted.

    The quorum count is raised to 3 when lower and bumped to the next odd
    number when even. Applying the pass twice gives the same result as once.
    """
    spec = spec.model_copy(deep=True)

    if not spec.edition:
        spec.edition = SUPPORTED_EDITION
    if not spec.image.pullPolicy:
        spec.image.pullPolicy = DEFAULT_PULL_POLICY

    if spec.tls is None:
        spec.tls = TLSSpec()
    if not spec.tls.mode:
        spec.tls.mode = DEFAULT_TLS_MODE
    if spec.tls.mode == "cert-manager" and spec.tls.issuerRef is not None:
        if not spec.tls.issuerRef.kind:
            spec.tls.issuerRef.kind = DEFAULT_ISSUER_KIND

    if spec.auth is None:
        spec.auth = AuthSpec()
    if not spec.auth.provider:
        spec.auth.provider = DEFAULT_AUTH_PROVIDER

    if spec.service is None:
        spec.service = ServiceSpec()
    if not spec.service.type:
        spec.service.type = DEFAULT_SERVICE_TYPE

    if not spec.storage.retentionPolicy:
        spec.storage.retentionPolicy = DEFAULT_RETENTION_POLICY

    field = spec.quorum_field
    current = getattr(spec.topology, field)
    corrected = _corrected_quorum(current)
    if corrected != current:
        logger.info(f"Adjusting topology.{field} from {current} to {corrected}")
        setattr(spec.topology, field, corrected)

    return spec
