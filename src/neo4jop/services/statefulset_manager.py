""" Member restart control through the cluster's StatefulSet.

The rolling-update partition is the freeze: pods with an ordinal at or above
the partition move to the new revision, the rest stay where they are.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import kubernetes
from kubernetes.client.exceptions import ApiException

from neo4jop.config import NEO4J_CONTAINER_NAME, UPGRADE_TIMESTAMP_ANNOTATION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberState:
    ready: bool
    updated: bool


def get_statefulset_name(cluster_name):
    return f"{cluster_name}-server"


def _pod_is_ready(pod):
    conditions = pod.status.conditions if pod.status and pod.status.conditions else []
    for condition in conditions:
        if condition.type == "Ready":
            return condition.status == "True"
    return False


class StatefulSetMemberController:
    """ Freezes, releases and inspects the members of one cluster.
    """

    def __init__(self, cluster_name, namespace, apps_api=None, core_api=None):
        self.cluster_name = cluster_name
        self.namespace = namespace
        self.name = get_statefulset_name(cluster_name)
        self.apps_api = apps_api or kubernetes.client.AppsV1Api()
        self.core_api = core_api or kubernetes.client.CoreV1Api()

    def _read(self):
        return self.apps_api.read_namespaced_stateful_set(
            name=self.name, namespace=self.namespace
        )

    def _patch(self, body):
        return self.apps_api.patch_namespaced_stateful_set(
            name=self.name, namespace=self.namespace, body=body
        )

    def replicas(self):
        return self._read().spec.replicas or 0

    def current_image(self):
        """ Image of the neo4j container in the pod template, or None if absent.
        """
        try:
            sts = self._read()
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        for container in sts.spec.template.spec.containers:
            if container.name == NEO4J_CONTAINER_NAME:
                return container.image
        return None

    def freeze(self, image):
        """ Stage ``image`` on the template with every member held back.

        Returns:
            int: the replica count the partition was set to
        """
        replicas = self.replicas()
        body = {
            "spec": {
                "updateStrategy": {
                    "type": "RollingUpdate",
                    "rollingUpdate": {"partition": replicas},
                },
                "template": {
                    "metadata": {
                        "annotations": {
                            UPGRADE_TIMESTAMP_ANNOTATION: datetime.now(timezone.utc).isoformat()
                        }
                    },
                    "spec": {
                        "containers": [{"name": NEO4J_CONTAINER_NAME, "image": image}]
                    },
                },
            }
        }
        self._patch(body)
        logger.info(f"Froze {self.namespace}/{self.name} at partition {replicas} with image {image}")
        return replicas

    def release(self, ordinal):
        """ Lower the partition so member ``ordinal`` restarts on the new revision.
        """
        self._patch(
            {"spec": {"updateStrategy": {"rollingUpdate": {"partition": ordinal}}}}
        )
        logger.info(f"Released member {ordinal} of {self.namespace}/{self.name}")

    def member_state(self, ordinal) -> MemberState:
        sts = self._read()
        update_revision = sts.status.update_revision if sts.status else None
        pod_name = f"{self.name}-{ordinal}"
        try:
            pod = self.core_api.read_namespaced_pod(name=pod_name, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                return MemberState(ready=False, updated=False)
            raise

        labels = pod.metadata.labels or {}
        revision = labels.get("controller-revision-hash")
        return MemberState(
            ready=_pod_is_ready(pod),
            updated=bool(update_revision) and revision == update_revision,
        )

    def all_updated(self):
        """ True when every replica runs the update revision and is ready.
        """
        sts = self._read()
        replicas = sts.spec.replicas or 0
        status = sts.status
        if status is None:
            return replicas == 0
        return (
            (status.updated_replicas or 0) >= replicas
            and (status.ready_replicas or 0) >= replicas
        )
