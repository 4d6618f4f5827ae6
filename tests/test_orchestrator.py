"""Test the rolling upgrade state machine with fake cluster collaborators."""

import json
from datetime import datetime, timedelta, timezone

import httpx

from neo4jop.exceptions import OracleUnavailable
from neo4jop.models.cluster import UpgradeStatus, UpgradeStrategySpec
from neo4jop.services.membership import ClusterObservation, MembershipOracle
from neo4jop.services.statefulset_manager import MemberState
from neo4jop.upgrade import MemberStep, Phase, RollingUpgradeOrchestrator, Step

TARGET = "5.27.0"
IMAGE = f"neo4j:{TARGET}"


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMembers:
    """Records freeze and release calls and reports scripted member states."""

    def __init__(self, replicas=3):
        self._replicas = replicas
        self.partition = None
        self.image = None
        self.released = []
        self.ready = set()
        self.updated = True

    def replicas(self):
        return self._replicas

    def freeze(self, image):
        self.image = image
        self.partition = self._replicas
        return self._replicas

    def release(self, ordinal):
        self.partition = ordinal
        self.released.append(ordinal)

    def member_state(self, ordinal):
        return MemberState(ready=ordinal in self.ready, updated=ordinal in self.ready)

    def all_updated(self):
        return self.updated


class FakeOracle:
    def __init__(self):
        self.confirmed = set()
        self.primary = 0
        self.healthy = True
        self.fail = False
        self.primary_fails = False
        self.versions = {0: TARGET, 1: TARGET, 2: TARGET}

    def member_confirmed(self, ordinal):
        if self.fail:
            raise OracleUnavailable("timed out")
        return ordinal in self.confirmed

    def primary_ordinal(self):
        if self.primary_fails:
            raise OracleUnavailable("timed out")
        return self.primary

    def member_versions(self):
        if self.fail:
            raise OracleUnavailable("timed out")
        return dict(self.versions)

    def observe(self, expected_members):
        if self.fail:
            raise OracleUnavailable("timed out")
        return ClusterObservation(self.healthy, self.healthy, self.primary)


def event_reasons(result):
    return [event.reason for event in result.events]


class TestRollingUpgrade:
    def setup_method(self):
        self.clock = FakeClock()
        self.members = FakeMembers()
        self.oracle = FakeOracle()
        self.orchestrator = RollingUpgradeOrchestrator(
            self.members, self.oracle, UpgradeStrategySpec(), clock=self.clock,
            required_stable_observations=3,
        )

    def start(self):
        result = self.orchestrator.reconcile(None, TARGET, IMAGE, "5.26.0")
        assert result.status.phase == Phase.IN_PROGRESS.value
        return result.status

    def roll(self, status, ordinal):
        """Drive one member through restart, readiness and membership."""
        status = self.orchestrator.step(status).status
        assert self.members.partition == ordinal
        self.members.ready.add(ordinal)
        status = self.orchestrator.step(status).status
        assert status.memberStep == MemberStep.AWAITING_MEMBERSHIP.value
        self.oracle.confirmed.add(ordinal)
        return self.orchestrator.step(status).status

    def test_full_upgrade_rolls_highest_ordinal_first(self):
        status = self.start()
        result = self.orchestrator.step(status)
        status = result.status
        assert status.step == Step.ROLLING_MEMBER.value
        assert status.currentOrdinal == 2
        assert self.members.partition == 3
        assert self.members.image == IMAGE

        for ordinal in (2, 1, 0):
            status = self.roll(status, ordinal)

        assert self.members.released == [2, 1, 0]
        assert status.step == Step.STABILIZING.value
        assert status.progress.upgraded == 3

        versions = []
        for _ in range(3):
            result = self.orchestrator.step(status)
            status = result.status
            versions.append(result.version)

        assert status.phase == Phase.COMPLETED.value
        assert versions == [None, None, TARGET]
        assert "UpgradeCompleted" in event_reasons(result)

    def test_readiness_alone_does_not_advance(self):
        """Test that a ready pod waits for membership confirmation."""
        status = self.orchestrator.step(self.start()).status
        status = self.orchestrator.step(status).status
        self.members.ready.add(2)
        status = self.orchestrator.step(status).status
        for _ in range(3):
            self.clock.advance(seconds=30)
            status = self.orchestrator.step(status).status
        assert status.currentOrdinal == 2
        assert status.memberStep == MemberStep.AWAITING_MEMBERSHIP.value
        assert self.members.released == [2]

    def test_readiness_timeout_fails_and_keeps_freeze(self):
        status = self.orchestrator.step(self.start()).status
        status = self.orchestrator.step(status).status
        self.clock.advance(minutes=31)
        result = self.orchestrator.step(status)
        assert result.status.phase == Phase.FAILED.value
        assert result.status.reason == "MemberReadinessTimeout"
        assert "UpgradeFailed" in event_reasons(result)
        assert self.members.partition == 2

        # Failed upgrades are left alone until the target changes.
        assert self.orchestrator.reconcile(result.status, TARGET, IMAGE, "5.26.0") is None

    def test_membership_timeout_after_oracle_errors(self):
        """Test that oracle timeouts are retried until the step budget runs out."""
        status = self.orchestrator.step(self.start()).status
        status = self.orchestrator.step(status).status
        self.members.ready.add(2)
        status = self.orchestrator.step(status).status
        self.oracle.fail = True

        self.clock.advance(minutes=4)
        status = self.orchestrator.step(status).status
        assert status.phase == Phase.IN_PROGRESS.value
        assert "timed out" in status.message

        self.clock.advance(minutes=2)
        status = self.orchestrator.step(status).status
        assert status.phase == Phase.FAILED.value
        assert status.reason == "MembershipConfirmationTimeout"

    def test_primary_not_at_ordinal_zero_only_warns(self):
        self.oracle.primary = 1
        result = self.orchestrator.step(self.start())
        assert "PrimaryNotAtOrdinalZero" in event_reasons(result)
        assert result.status.step == Step.ROLLING_MEMBER.value
        assert result.status.currentOrdinal == 2

    def test_unknown_primary_is_not_fatal(self):
        self.orchestrator.strategy.preUpgradeHealthCheck = False
        self.oracle.primary_fails = True
        result = self.orchestrator.step(self.start())
        assert "PrimaryUnknown" in event_reasons(result)
        assert result.status.step == Step.ROLLING_MEMBER.value

    def test_unhealthy_cluster_delays_freeze(self):
        self.oracle.healthy = False
        status = self.orchestrator.step(self.start()).status
        assert status.step == Step.FREEZING.value
        assert self.members.partition is None

    def test_stabilization_needs_consecutive_identical_observations(self):
        status = self.start()
        status = self.orchestrator.step(status).status
        for ordinal in (2, 1, 0):
            status = self.roll(status, ordinal)

        status = self.orchestrator.step(status).status
        self.oracle.primary = 2
        status = self.orchestrator.step(status).status
        assert status.stableObservations == 1

        self.oracle.healthy = False
        status = self.orchestrator.step(status).status
        assert status.stableObservations == 0
        assert status.phase == Phase.IN_PROGRESS.value

    def test_stabilization_timeout(self):
        status = self.start()
        status = self.orchestrator.step(status).status
        for ordinal in (2, 1, 0):
            status = self.roll(status, ordinal)
        self.members.updated = False
        self.clock.advance(minutes=4)
        status = self.orchestrator.step(status).status
        assert status.phase == Phase.FAILED.value
        assert status.reason == "StabilizationTimeout"

    def test_stabilization_waits_for_reported_versions(self):
        status = self.start()
        status = self.orchestrator.step(status).status
        for ordinal in (2, 1, 0):
            status = self.roll(status, ordinal)

        self.oracle.versions[1] = "5.26.0"
        del self.oracle.versions[0]
        status = self.orchestrator.step(status).status
        assert status.stableObservations == 0
        assert "0=unknown, 1=5.26.0" in status.message

        self.oracle.versions = {0: "5.27", 1: "5.27.0", 2: "5.27.0"}
        for _ in range(3):
            result = self.orchestrator.step(status)
            status = result.status
        assert status.phase == Phase.COMPLETED.value
        assert result.version == TARGET

    def test_version_mismatch_ends_in_stabilization_timeout(self):
        status = self.start()
        status = self.orchestrator.step(status).status
        for ordinal in (2, 1, 0):
            status = self.roll(status, ordinal)
        self.oracle.versions[2] = "5.26.0"
        self.clock.advance(minutes=4)
        status = self.orchestrator.step(status).status
        assert status.phase == Phase.FAILED.value
        assert "2=5.26.0" in status.lastError

class TestReconcile:
    def setup_method(self):
        self.clock = FakeClock()
        self.members = FakeMembers()
        self.oracle = FakeOracle()
        self.orchestrator = RollingUpgradeOrchestrator(
            self.members, self.oracle, clock=self.clock, required_stable_observations=3
        )

    def test_nothing_to_do_when_versions_match(self):
        assert self.orchestrator.reconcile(None, TARGET, IMAGE, TARGET) is None

    def test_incompatible_recorded_version_fails_without_freezing(self):
        result = self.orchestrator.reconcile(None, "5.26.0", "neo4j:5.26.0", "2025.1.0")
        assert result.status.phase == Phase.FAILED.value
        assert result.status.reason == "DowngradeRejected"
        assert self.members.partition is None

    def test_missing_recorded_version_skips_check(self):
        result = self.orchestrator.reconcile(None, TARGET, IMAGE, None)
        assert result.status.phase == Phase.IN_PROGRESS.value
        assert result.status.previousVersion is None

    def test_new_target_waits_for_in_flight_member(self):
        """Test that a changed target never interrupts a member mid-restart."""
        status = self.orchestrator.reconcile(None, TARGET, IMAGE, "5.26.0").status
        status = self.orchestrator.step(status).status
        status = self.orchestrator.step(status).status
        assert status.memberStep == MemberStep.AWAITING_READINESS.value

        result = self.orchestrator.reconcile(status, "5.28.0", "neo4j:5.28.0", "5.26.0")
        assert result.status.targetVersion == TARGET

        self.members.ready.add(2)
        status = self.orchestrator.step(result.status).status
        self.oracle.confirmed.add(2)
        status = self.orchestrator.step(status).status
        assert status.memberStep == MemberStep.PENDING.value

        result = self.orchestrator.reconcile(status, "5.28.0", "neo4j:5.28.0", "5.26.0")
        assert result.status.targetVersion == "5.28.0"
        assert result.status.step == Step.FREEZING.value
        assert event_reasons(result)[0] == "UpgradeSuperseded"

    def test_step_is_noop_for_finished_upgrades(self):
        status = UpgradeStatus(phase=Phase.COMPLETED.value, targetVersion=TARGET)
        result = self.orchestrator.step(status)
        assert result.status == status
        assert result.events == []


def cypher_response(columns, rows):
    return httpx.Response(
        200,
        json={
            "results": [{"columns": columns, "data": [{"row": row} for row in rows]}],
            "errors": [],
        },
    )


class TestWriterLookupFailure:
    """The system database writer query fails while the server table is healthy."""

    def setup_method(self):
        self.clock = FakeClock()
        self.members = FakeMembers()
        self.oracle = MembershipOracle(
            "graph",
            "http://graph-client.db.svc.cluster.local:7474",
            transport=httpx.MockTransport(self.respond),
        )
        self.orchestrator = RollingUpgradeOrchestrator(
            self.members, self.oracle, UpgradeStrategySpec(), clock=self.clock,
            required_stable_observations=3,
        )

    def respond(self, request):
        statement = json.loads(request.content)["statements"][0]["statement"]
        addresses = [f"graph-server-{i}.graph-headless:7687" for i in range(3)]
        if statement.startswith("SHOW DATABASE"):
            return httpx.Response(
                200,
                json={
                    "results": [],
                    "errors": [{"code": "Neo.DatabaseError.General.UnknownError", "message": "boom"}],
                },
            )
        if statement.endswith("version"):
            return cypher_response(["address", "version"], [[a, TARGET] for a in addresses])
        return cypher_response(
            ["name", "address", "state", "health"],
            [[f"s{i}", a, "Enabled", "Available"] for i, a in enumerate(addresses)],
        )

    def test_upgrade_completes_with_unknown_primary(self):
        status = self.orchestrator.reconcile(None, TARGET, IMAGE, "5.26.0").status
        result = self.orchestrator.step(status)
        status = result.status
        assert status.step == Step.ROLLING_MEMBER.value
        assert "PrimaryUnknown" in event_reasons(result)

        for ordinal in (2, 1, 0):
            status = self.orchestrator.step(status).status
            self.members.ready.add(ordinal)
            status = self.orchestrator.step(status).status
            status = self.orchestrator.step(status).status
        assert status.step == Step.STABILIZING.value

        for _ in range(3):
            self.clock.advance(seconds=10)
            status = self.orchestrator.step(status).status
        assert status.phase == Phase.COMPLETED.value
