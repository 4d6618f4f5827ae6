""" Cluster membership oracle backed by the Neo4j HTTP transactional API.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx
import kubernetes
from kubernetes.client.exceptions import ApiException

from neo4jop import config
from neo4jop.exceptions import OracleUnavailable

logger = logging.getLogger(__name__)

SHOW_SERVERS = "SHOW SERVERS YIELD name, address, state, health"
SHOW_SYSTEM_WRITER = "SHOW DATABASE system YIELD address, writer"
SHOW_SERVER_VERSIONS = "SHOW SERVERS YIELD address, version"
TX_COMMIT_PATH = "/db/system/tx/commit"


@dataclass(frozen=True)
class MemberRecord:
    ordinal: int
    enabled: bool
    available: bool

    @property
    def confirmed(self):
        return self.enabled and self.available


@dataclass(frozen=True)
class ClusterObservation:
    """ One snapshot of cluster health, compared across polls for stability.
    """

    healthy: bool
    enabled_majority: bool
    primary_ordinal: Optional[int]

    @property
    def stable(self):
        return self.healthy and self.enabled_majority

    def __str__(self):
        return (
            f"healthy={self.healthy} enabled={self.enabled_majority} "
            f"primary={self.primary_ordinal}"
        )


def get_client_url(cluster_name, namespace):
    """ Client service URL for a cluster.
    """
    host = f"{cluster_name}-client.{namespace}.svc.{config.get_cluster_domain()}"
    return f"{config.get_neo4j_http_scheme()}://{host}:{config.get_neo4j_http_port()}"


def read_admin_credentials(secret_name, namespace):
    """ Read the admin username and password from a Kubernetes secret.
    """
    api = kubernetes.client.CoreV1Api()
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            raise OracleUnavailable(f"admin secret {namespace}/{secret_name} not found")
        raise

    data = secret.data or {}
    if "username" not in data or "password" not in data:
        raise OracleUnavailable(
            f"admin secret {namespace}/{secret_name} must contain username and password"
        )
    username = base64.b64decode(data["username"]).decode()
    password = base64.b64decode(data["password"]).decode()
    return username, password


class MembershipOracle:
    """ Answers membership questions by querying the live Neo4j cluster.

    Every request carries its own timeout; any transport, HTTP or Cypher
    failure is raised as OracleUnavailable so callers can treat it as transient.
    """

    def __init__(self, cluster_name, base_url, auth=None, timeout=None, transport=None):
        self.cluster_name = cluster_name
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout or config.get_neo4j_query_timeout()
        self.transport = transport
        self._address_pattern = re.compile(
            rf"^{re.escape(cluster_name)}-server-(\d+)(?:[.:]|$)"
        )

    def _client(self):
        return httpx.Client(
            auth=self.auth,
            timeout=self.timeout,
            verify=config.get_neo4j_verify_tls(),
            transport=self.transport,
        )

    def query(self, statement):
        """ Run a statement against the system database and return its rows.
        """
        url = f"{self.base_url}{TX_COMMIT_PATH}"
        body = {"statements": [{"statement": statement}]}
        logger.debug(f"POST {url}: {statement}")

        try:
            with self._client() as client:
                response = client.post(url, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise OracleUnavailable(f"membership query failed: {e}")
        except ValueError as e:
            raise OracleUnavailable(f"membership query returned invalid JSON: {e}")

        errors = payload.get("errors") or []
        if errors:
            first = errors[0]
            raise OracleUnavailable(
                f"membership query error {first.get('code')}: {first.get('message')}"
            )

        results = payload.get("results") or []
        if not results:
            return []
        columns = results[0].get("columns", [])
        return [dict(zip(columns, item.get("row", []))) for item in results[0].get("data", [])]

    def ordinal_for_address(self, address):
        """ Map a server address such as ``graph-server-2.graph-headless:7687`` to 2.
        """
        if not address:
            return None
        match = self._address_pattern.match(address)
        return int(match.group(1)) if match else None

    def member_records(self) -> List[MemberRecord]:
        records = []
        for row in self.query(SHOW_SERVERS):
            ordinal = self.ordinal_for_address(row.get("address"))
            if ordinal is None:
                logger.debug(f"Ignoring server with unrecognised address {row.get('address')}")
                continue
            records.append(
                MemberRecord(
                    ordinal=ordinal,
                    enabled=str(row.get("state", "")).lower() == "enabled",
                    available=str(row.get("health", "")).lower() == "available",
                )
            )
        return records

    def member_confirmed(self, ordinal) -> bool:
        """ True once the member reports itself Enabled and Available.
        """
        return any(r.ordinal == ordinal and r.confirmed for r in self.member_records())

    def primary_ordinal(self) -> Optional[int]:
        """ Ordinal of the member hosting the system database writer, if known.
        """
        for row in self.query(SHOW_SYSTEM_WRITER):
            if row.get("writer"):
                return self.ordinal_for_address(row.get("address"))
        return None

    def member_versions(self) -> Dict[int, Optional[str]]:
        """ Neo4j version each member reports, keyed by ordinal.
        """
        versions = {}
        for row in self.query(SHOW_SERVER_VERSIONS):
            ordinal = self.ordinal_for_address(row.get("address"))
            if ordinal is not None:
                versions[ordinal] = row.get("version")
        return versions

    def observe(self, expected_members) -> ClusterObservation:
        """ Snapshot availability and enablement against the expected member count.

        The writer lookup is advisory: when it fails the observation carries
        primary_ordinal=None and is still judged on the server table alone.
        """
        records = self.member_records()
        majority = expected_members // 2 + 1
        available = sum(1 for r in records if r.available)
        enabled = sum(1 for r in records if r.enabled)

        try:
            primary = self.primary_ordinal()
        except OracleUnavailable as e:
            logger.warning(f"System database writer lookup failed for {self.cluster_name}: {e}")
            primary = None

        return ClusterObservation(
            healthy=available >= majority,
            enabled_majority=enabled >= majority,
            primary_ordinal=primary,
        )


def get_membership_oracle(cluster_name, namespace, admin_secret=None):
    """ Build an oracle for a cluster using its admin secret.
    """
    auth = read_admin_credentials(admin_secret or config.DEFAULT_ADMIN_SECRET, namespace)
    return MembershipOracle(cluster_name, get_client_url(cluster_name, namespace), auth=auth)
