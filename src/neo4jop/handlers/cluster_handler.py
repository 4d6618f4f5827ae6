"""Reconciliation of image changes through the rolling upgrade orchestrator."""

import logging

import kopf
from kubernetes.client.exceptions import ApiException
from pydantic import ValidationError

from neo4jop import config
from neo4jop.config import GROUP, PLURAL, VERSION
from neo4jop.exceptions import OracleUnavailable
from neo4jop.models.cluster import ClusterSpec, ClusterStatus
from neo4jop.services.membership import get_membership_oracle
from neo4jop.services.statefulset_manager import StatefulSetMemberController
from neo4jop.upgrade import Phase, RollingUpgradeOrchestrator

logger = logging.getLogger(__name__)

RECREATE = "Recreate"
UPGRADED_CONDITION = "Upgraded"


def emit_events(body, events):
    for event in events:
        if event.warning:
            kopf.warn(body, reason=event.reason, message=event.message)
        else:
            kopf.info(body, reason=event.reason, message=event.message)


def record_version(body, patch, version):
    patch.status["version"] = version
    kopf.info(body, reason="VersionRecorded", message=f"Cluster is running {version}")


@kopf.on.update(GROUP, VERSION, PLURAL, field="spec.image.tag", id="image-tag-changed")
def image_tag_changed(body, old, new, name, namespace, **kwargs):
    """Announce a requested version change; the timer performs the upgrade."""
    if old is None or new is None:
        return
    kopf.info(body, reason="UpgradeRequested", message=f"Image tag changed from {old} to {new}")
    logger.info(f"Upgrade of {namespace}/{name} requested: {old} -> {new}")


@kopf.timer(
    GROUP,
    VERSION,
    PLURAL,
    interval=config.get_upgrade_tick_interval(),
    initial_delay=5,
    id="rolling-upgrade",
)
def rolling_upgrade_tick(body, spec, status, name, namespace, patch, **kwargs):
    """Advance the rolling upgrade of one cluster by a single step."""
    try:
        cluster = ClusterSpec.model_validate(dict(spec))
        cluster_status = ClusterStatus.model_validate(dict(status or {}))
    except ValidationError as e:
        logger.warning(f"Cannot reconcile {namespace}/{name}: {e}")
        return

    target = cluster.image.tag
    if not target:
        return

    upgrade = cluster_status.upgradeStatus
    in_progress = upgrade is not None and upgrade.phase == Phase.IN_PROGRESS.value
    recorded = cluster_status.version
    if not in_progress and recorded == target:
        return

    members = StatefulSetMemberController(name, namespace)
    try:
        if (not in_progress and recorded is None) or cluster.strategy.strategy == RECREATE:
            image = members.current_image()
            if image is None:
                logger.debug(f"StatefulSet for {namespace}/{name} does not exist yet")
                return
            if image == cluster.target_image and (
                cluster.strategy.strategy != RECREATE or members.all_updated()
            ):
                record_version(body, patch, target)
                return
            if cluster.strategy.strategy == RECREATE:
                logger.debug(f"{namespace}/{name} uses the Recreate strategy, not rolling")
                return

        admin_secret = cluster.auth.adminSecret if cluster.auth else None
        oracle = get_membership_oracle(name, namespace, admin_secret)
        orchestrator = RollingUpgradeOrchestrator(members, oracle, cluster.strategy)
        result = orchestrator.reconcile(upgrade, target, cluster.target_image, recorded)

    except OracleUnavailable as e:
        logger.warning(f"Membership oracle for {namespace}/{name} unavailable: {e}")
        return
    except ApiException as e:
        raise kopf.TemporaryError(f"Kubernetes API error during upgrade: {e.reason}", delay=30)

    if result is None:
        return

    # Cleared fields are sent as null so the merge patch removes them.
    patch.status["upgradeStatus"] = result.status.model_dump(mode="json")
    if result.version:
        patch.status["version"] = result.version

    generation = (body.get("metadata") or {}).get("generation")
    if generation is not None:
        patch.status["observedGeneration"] = generation

    if result.done:
        upgrade = result.status
        if upgrade.phase == Phase.COMPLETED.value:
            cluster_status.set_condition(
                UPGRADED_CONDITION, "True", "UpgradeCompleted", upgrade.message or ""
            )
        else:
            cluster_status.set_condition(
                UPGRADED_CONDITION,
                "False",
                upgrade.reason or "UpgradeFailed",
                upgrade.lastError or upgrade.message or "",
            )
        patch.status["conditions"] = [
            c.model_dump(mode="json", exclude_none=True) for c in cluster_status.conditions
        ]

    emit_events(body, result.events)
