"""Rolling upgrade state machine.

NotStarted -> Freezing -> RollingMember(N-1) ... RollingMember(0) -> Stabilizing -> Completed

Each call to ``step`` performs at most one transition and never sleeps; the
caller re-invokes it on a timer and persists the returned status. Waits are
bounded by the timeouts of the cluster's upgrade strategy, measured from
``stepStartedAt``. A timeout moves the upgrade to Failed and leaves the
StatefulSet frozen at the member that failed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from neo4jop import config
from neo4jop.exceptions import (
    MemberReadinessTimeout,
    MembershipConfirmationTimeout,
    OracleUnavailable,
    StabilizationTimeout,
    UpgradeTimeout,
)
from neo4jop.models.cluster import UpgradeProgress, UpgradeStatus, UpgradeStrategySpec
from neo4jop.validation.durations import parse_duration
from neo4jop.versioning import decide_upgrade, versions_match

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class Step(str, Enum):
    FREEZING = "Freezing"
    ROLLING_MEMBER = "RollingMember"
    STABILIZING = "Stabilizing"


class MemberStep(str, Enum):
    PENDING = "Pending"
    AWAITING_READINESS = "AwaitingReadiness"
    AWAITING_MEMBERSHIP = "AwaitingMembership"


@dataclass
class UpgradeEvent:
    reason: str
    message: str
    warning: bool = False


@dataclass
class StepResult:
    status: UpgradeStatus
    events: List[UpgradeEvent] = field(default_factory=list)
    # Set once the target version is running everywhere
    version: Optional[str] = None

    @property
    def done(self):
        return self.status.phase in (Phase.COMPLETED.value, Phase.FAILED.value)


def _utcnow():
    return datetime.now(timezone.utc)


def _timeout(value, default):
    try:
        return parse_duration(value)
    except ValueError:
        logger.warning(f"Invalid upgrade timeout {value!r}, using {default}")
        return parse_duration(default)


class RollingUpgradeOrchestrator:
    """Drives one cluster from its recorded version to a target version.

    Args:
        members: a StatefulSetMemberController (or anything with the same methods)
        oracle: a MembershipOracle
        strategy: the cluster's UpgradeStrategySpec
        clock: callable returning an aware datetime, for tests
    """

    def __init__(
        self,
        members,
        oracle,
        strategy: Optional[UpgradeStrategySpec] = None,
        clock: Optional[Callable[[], datetime]] = None,
        required_stable_observations: Optional[int] = None,
    ):
        self.members = members
        self.oracle = oracle
        self.strategy = strategy or UpgradeStrategySpec()
        self.clock = clock or _utcnow
        self.required_stable_observations = (
            required_stable_observations or config.get_stable_observations()
        )
        self.readiness_timeout = _timeout(self.strategy.upgradeTimeout, "30m")
        self.membership_timeout = _timeout(self.strategy.healthCheckTimeout, "5m")
        self.stabilization_timeout = _timeout(self.strategy.stabilizationTimeout, "3m")

    def reconcile(
        self,
        upgrade: Optional[UpgradeStatus],
        target_version: str,
        target_image: str,
        recorded_version: Optional[str],
    ) -> Optional[StepResult]:
        """Advance, start, restart or leave alone the upgrade for a desired target.

        Returns None when there is nothing to do.
        """
        if upgrade is not None and upgrade.phase == Phase.IN_PROGRESS.value:
            if upgrade.targetVersion != target_version and self.at_member_boundary(upgrade):
                result = self.begin(target_version, target_image, recorded_version)
                result.events.insert(
                    0,
                    UpgradeEvent(
                        "UpgradeSuperseded",
                        f"Upgrade to {upgrade.targetVersion} superseded by {target_version}",
                        warning=True,
                    ),
                )
                return result
            return self.step(upgrade)

        if recorded_version == target_version:
            return None

        if (
            upgrade is not None
            and upgrade.phase == Phase.FAILED.value
            and upgrade.targetVersion == target_version
        ):
            # A failed upgrade stays failed until the target changes.
            return None

        return self.begin(target_version, target_image, recorded_version)

    def at_member_boundary(self, status: UpgradeStatus) -> bool:
        """True when no member is between restart and membership confirmation."""
        if status.step == Step.ROLLING_MEMBER.value:
            return status.memberStep == MemberStep.PENDING.value
        return True

    def begin(self, target_version, target_image, recorded_version=None) -> StepResult:
        """Create the status for a fresh upgrade, after a compatibility check."""
        now = self.clock()
        status = UpgradeStatus(
            phase=Phase.IN_PROGRESS.value,
            step=Step.FREEZING.value,
            startTime=now,
            stepStartedAt=now,
            previousVersion=recorded_version,
            targetVersion=target_version,
            targetImage=target_image,
            message=f"Preparing upgrade to {target_version}",
        )
        events = []

        if recorded_version:
            decision = decide_upgrade(recorded_version, target_version)
            if not decision.allowed:
                status.phase = Phase.FAILED.value
                status.step = None
                status.lastError = decision.reason
                status.reason = decision.code.value if decision.code else None
                status.message = f"Upgrade from {recorded_version} to {target_version} rejected"
                events.append(UpgradeEvent("UpgradeRejected", decision.reason, warning=True))
                return StepResult(status=status, events=events)
        else:
            logger.info(f"No recorded version, skipping compatibility check for {target_version}")

        events.append(
            UpgradeEvent(
                "UpgradeStarted",
                f"Rolling upgrade from {recorded_version or 'unknown'} to {target_version}",
            )
        )
        return StepResult(status=status, events=events)

    def step(self, status: UpgradeStatus) -> StepResult:
        """Perform one transition of an in-progress upgrade."""
        status = status.model_copy(deep=True)
        result = StepResult(status=status)
        if status.phase != Phase.IN_PROGRESS.value:
            return result

        now = self.clock()
        try:
            if status.step == Step.FREEZING.value:
                self._freeze(result, now)
            elif status.step == Step.ROLLING_MEMBER.value:
                self._roll_member(result, now)
            elif status.step == Step.STABILIZING.value:
                self._stabilize(result, now)
            else:
                logger.warning(f"Unknown upgrade step {status.step}, restarting from Freezing")
                status.step = Step.FREEZING.value
                status.stepStartedAt = now
        except UpgradeTimeout as e:
            self._fail(result, e)

        self._update_progress(status)
        return result

    def _elapsed(self, status, now) -> timedelta:
        started = status.stepStartedAt or now
        return now - started

    def _freeze(self, result, now):
        status = result.status
        observation = None

        if self.strategy.preUpgradeHealthCheck:
            try:
                observation = self.oracle.observe(self.members.replicas())
            except OracleUnavailable as e:
                status.message = f"Waiting for cluster health before upgrading: {e}"
                return
            if not observation.stable:
                status.message = f"Waiting for cluster health before upgrading ({observation})"
                return

        replicas = self.members.freeze(status.targetImage)
        status.progress = UpgradeProgress(total=replicas, pending=replicas)
        self._check_primary(result, observation)

        status.stepStartedAt = now
        if replicas == 0:
            status.step = Step.STABILIZING.value
            status.message = "No members to roll"
            return

        status.step = Step.ROLLING_MEMBER.value
        status.currentOrdinal = replicas - 1
        status.memberStep = MemberStep.PENDING.value
        status.message = f"Froze {replicas} members at image {status.targetImage}"

    def _check_primary(self, result, observation):
        """Warn when ordinal 0, which always rolls last, is not the system primary."""
        try:
            if observation is not None:
                primary = observation.primary_ordinal
            else:
                primary = self.oracle.primary_ordinal()
        except OracleUnavailable as e:
            logger.warning(f"Could not determine system database primary: {e}")
            primary = None

        if primary is None:
            result.events.append(
                UpgradeEvent(
                    "PrimaryUnknown",
                    "Could not determine the system database primary; ordinal 0 will still be rolled last",
                    warning=True,
                )
            )
        elif primary != 0:
            result.events.append(
                UpgradeEvent(
                    "PrimaryNotAtOrdinalZero",
                    f"System database primary is at ordinal {primary}; ordinal 0 will still be rolled last",
                    warning=True,
                )
            )

    def _roll_member(self, result, now):
        status = result.status
        ordinal = status.currentOrdinal

        if status.memberStep == MemberStep.PENDING.value:
            self.members.release(ordinal)
            status.memberStep = MemberStep.AWAITING_READINESS.value
            status.stepStartedAt = now
            status.message = f"Restarting member {ordinal}"
            result.events.append(UpgradeEvent("MemberRestarting", status.message))
            return

        if status.memberStep == MemberStep.AWAITING_READINESS.value:
            state = self.members.member_state(ordinal)
            if state.ready and state.updated:
                status.memberStep = MemberStep.AWAITING_MEMBERSHIP.value
                status.stepStartedAt = now
                status.message = f"Member {ordinal} is ready, waiting for cluster membership"
                return
            if self._elapsed(status, now) > self.readiness_timeout:
                raise MemberReadinessTimeout(
                    f"member {ordinal} not ready on the new revision within "
                    f"{self.strategy.upgradeTimeout}"
                )
            status.message = f"Waiting for member {ordinal} to become ready"
            return

        try:
            confirmed = self.oracle.member_confirmed(ordinal)
            detail = ""
        except OracleUnavailable as e:
            confirmed = False
            detail = f": {e}"

        if not confirmed:
            if self._elapsed(status, now) > self.membership_timeout:
                raise MembershipConfirmationTimeout(
                    f"member {ordinal} did not rejoin the cluster within "
                    f"{self.strategy.healthCheckTimeout}{detail}"
                )
            status.message = f"Waiting for member {ordinal} to rejoin the cluster{detail}"
            return

        if ordinal not in status.confirmedMembers:
            status.confirmedMembers.append(ordinal)
        result.events.append(
            UpgradeEvent("MemberUpgraded", f"Member {ordinal} upgraded to {status.targetVersion}")
        )

        status.stepStartedAt = now
        if ordinal == 0:
            status.step = Step.STABILIZING.value
            status.currentOrdinal = None
            status.memberStep = None
            status.stableObservations = 0
            status.lastObservation = None
            status.message = "All members upgraded, waiting for the cluster to stabilize"
        else:
            status.currentOrdinal = ordinal - 1
            status.memberStep = MemberStep.PENDING.value
            status.message = f"Member {ordinal} upgraded"

    def _stabilize(self, result, now):
        status = result.status
        observation = None
        detail = ""

        if not self.members.all_updated():
            detail = ": members still rolling out"
        else:
            try:
                lagging = self._members_off_target(status)
                if lagging:
                    detail = f": members not yet reporting {status.targetVersion}: {lagging}"
                else:
                    observation = self.oracle.observe(status.progress.total)
            except OracleUnavailable as e:
                detail = f": {e}"

        if observation is not None and observation.stable:
            snapshot = str(observation)
            if snapshot == status.lastObservation:
                status.stableObservations += 1
            else:
                status.stableObservations = 1
            status.lastObservation = snapshot
        else:
            status.stableObservations = 0
            status.lastObservation = str(observation) if observation else None

        if status.stableObservations >= self.required_stable_observations:
            self._complete(result, now)
            return

        if self._elapsed(status, now) > self.stabilization_timeout:
            raise StabilizationTimeout(
                f"cluster did not stabilize within {self.strategy.stabilizationTimeout}{detail}"
            )
        status.message = (
            f"Stabilizing ({status.stableObservations}/"
            f"{self.required_stable_observations} healthy observations){detail}"
        )

    def _members_off_target(self, status) -> str:
        """Describe every member whose reported version is not the target."""
        reported = self.oracle.member_versions()
        lagging = []
        for ordinal in range(status.progress.total):
            version = reported.get(ordinal)
            if not versions_match(version, status.targetVersion):
                lagging.append(f"{ordinal}={version or 'unknown'}")
        return ", ".join(lagging)

    def _complete(self, result, now):
        status = result.status
        status.phase = Phase.COMPLETED.value
        status.step = None
        status.completionTime = now
        status.message = f"Upgraded to {status.targetVersion}"
        status.lastError = None
        status.reason = None
        result.version = status.targetVersion
        result.events.append(UpgradeEvent("UpgradeCompleted", status.message))

    def _fail(self, result, error: UpgradeTimeout):
        status = result.status
        status.phase = Phase.FAILED.value
        status.lastError = error.message
        status.reason = error.reason.value
        status.message = "Upgrade failed; members are left frozen for inspection"
        logger.error(f"Upgrade to {status.targetVersion} failed: {error.message}")
        result.events.append(UpgradeEvent("UpgradeFailed", error.message, warning=True))

    def _update_progress(self, status):
        progress = status.progress
        progress.upgraded = len(status.confirmedMembers)
        progress.inProgress = (
            1
            if status.phase == Phase.IN_PROGRESS.value
            and status.memberStep
            in (MemberStep.AWAITING_READINESS.value, MemberStep.AWAITING_MEMBERSHIP.value)
            else 0
        )
        progress.pending = max(progress.total - progress.upgraded - progress.inProgress, 0)
