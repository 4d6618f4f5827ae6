"""Test configuration and fixtures."""

import copy

import pytest


VALID_SPEC = {
    "edition": "enterprise",
    "image": {"repo": "neo4j", "tag": "5.26.0-enterprise", "pullPolicy": "IfNotPresent"},
    "topology": {"primaries": 3, "secondaries": 0},
    "storage": {"className": "standard", "size": "10Gi"},
    "tls": {"mode": "disabled"},
    "auth": {"provider": "native", "adminSecret": "neo4j-admin-secret"},
    "service": {"type": "ClusterIP"},
}


@pytest.fixture
def valid_spec():
    """A spec that passes every admission check."""
    return copy.deepcopy(VALID_SPEC)
