"""Environment-driven configuration for the operator."""

import os

GROUP = "neo4j.neo4j.com"
VERSION = "v1alpha1"
KIND = "Neo4jEnterpriseCluster"
PLURAL = "neo4jenterpriseclusters"

NEO4J_CONTAINER_NAME = "neo4j"
UPGRADE_TIMESTAMP_ANNOTATION = "neo4j.com/upgrade-timestamp"
DEFAULT_ADMIN_SECRET = "neo4j-admin-secret"


def _get_bool(name, default):
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def get_log_level():
    return os.environ.get("LOG_LEVEL", "INFO").upper()


def get_worker_limit():
    return int(os.environ.get("WORKER_LIMIT", "5"))


def get_posting_enabled():
    return _get_bool("POSTING_ENABLED", "false")


def get_server_timeout():
    return int(os.environ.get("SERVER_TIMEOUT", "60"))


def should_manage_crds():
    """ Determine if operator should manage CRDs directly.
    """
    return _get_bool("MANAGE_CRDS", "true")


def should_generate_crd_files():
    """ Determine if operator should generate CRD YAML files.
    """
    return _get_bool("GENERATE_CRD_FILES", "false")


def is_admission_enabled():
    return _get_bool("ADMISSION_ENABLED", "true")


def get_admission_host():
    return os.environ.get("ADMISSION_HOST")


def get_admission_port():
    return int(os.environ.get("ADMISSION_PORT", "9443"))


def get_admission_certfile():
    return os.environ.get("ADMISSION_CERTFILE")


def get_admission_pkeyfile():
    return os.environ.get("ADMISSION_PKEYFILE")


def get_upgrade_tick_interval():
    """ Seconds between two steps of the rolling upgrade state machine.
    """
    return float(os.environ.get("UPGRADE_TICK_INTERVAL", "10"))


def get_stable_observations():
    """ Consecutive healthy observations needed before an upgrade completes.
    """
    return int(os.environ.get("STABLE_OBSERVATIONS", "3"))


def get_neo4j_http_scheme():
    return os.environ.get("NEO4J_HTTP_SCHEME", "http")


def get_neo4j_http_port():
    return int(os.environ.get("NEO4J_HTTP_PORT", "7474"))


def get_neo4j_verify_tls():
    return _get_bool("NEO4J_VERIFY_TLS", "true")


def get_neo4j_query_timeout():
    return float(os.environ.get("NEO4J_QUERY_TIMEOUT", "10"))


def get_cluster_domain():
    return os.environ.get("KUBERNETES_CLUSTER_DOMAIN", "cluster.local")
