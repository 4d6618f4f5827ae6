"""Test defaulting, create/update validation and the admission handlers."""

from unittest.mock import Mock

import kopf
import pytest

from neo4jop.exceptions import ErrorReason, ValidationFailed
from neo4jop.handlers.admission_handler import default_cluster, validate_cluster
from neo4jop.models.cluster import ClusterSpec
from neo4jop.validation import ClusterValidator, apply_defaults, validate_create, validate_update


class TestApplyDefaults:
    def test_fills_defaults(self):
        spec = apply_defaults(ClusterSpec.model_validate({"image": {"repo": "neo4j", "tag": "5.26.0"}}))
        assert spec.edition == "enterprise"
        assert spec.image.pullPolicy == "IfNotPresent"
        assert spec.tls.mode == "disabled"
        assert spec.auth.provider == "native"
        assert spec.service.type == "ClusterIP"
        assert spec.storage.retentionPolicy == "Delete"
        assert spec.topology.primaries == 3

    def test_does_not_mutate_input(self):
        original = ClusterSpec.model_validate({"topology": {"primaries": 4}})
        apply_defaults(original)
        assert original.topology.primaries == 4
        assert original.edition is None

    @pytest.mark.parametrize("given,expected", [(1, 3), (2, 3), (4, 5), (5, 5), (8, 9)])
    def test_quorum_correction(self, given, expected):
        spec = apply_defaults(ClusterSpec.model_validate({"topology": {"primaries": given}}))
        assert spec.topology.primaries == expected

    def test_servers_corrected_when_primaries_unset(self):
        spec = apply_defaults(ClusterSpec.model_validate({"topology": {"servers": 6}}))
        assert spec.topology.servers == 7
        assert spec.topology.primaries is None

    def test_cert_manager_issuer_kind(self):
        spec = apply_defaults(
            ClusterSpec.model_validate({"tls": {"mode": "cert-manager", "issuerRef": {"name": "ca"}}})
        )
        assert spec.tls.issuerRef.kind == "ClusterIssuer"

    def test_idempotent(self, valid_spec):
        """Test that defaulting twice equals defaulting once."""
        for raw in [valid_spec, {}, {"topology": {"primaries": 4}, "tls": {"mode": "cert-manager", "issuerRef": {"name": "x"}}}]:
            once = apply_defaults(ClusterSpec.model_validate(raw))
            twice = apply_defaults(once)
            assert once == twice


class TestValidateCreate:
    def test_valid_spec(self, valid_spec):
        result = validate_create(valid_spec)
        assert result.allowed
        assert result.warnings == []

    def test_two_primaries_rejected(self, valid_spec):
        valid_spec["topology"]["primaries"] = 2
        result = validate_create(valid_spec)
        assert not result.allowed
        assert result.errors[0].reason == ErrorReason.QUORUM_VIOLATION

    def test_four_primaries_defaulted_on_create_but_rejected_when_stored(self, valid_spec):
        """Test that validation never silently corrects a stored even count."""
        valid_spec["topology"]["primaries"] = 4
        assert not validate_create(valid_spec).allowed

        defaulted = ClusterValidator().default(valid_spec)
        assert defaulted.topology.primaries == 5
        assert validate_create(defaulted).allowed

    def test_edition_fails_fast(self, valid_spec):
        valid_spec["edition"] = "community"
        valid_spec["topology"]["primaries"] = 2
        result = validate_create(valid_spec)
        assert [e.field for e in result.errors] == ["spec.edition"]

    def test_image_fails_fast_but_keeps_topology_errors(self, valid_spec):
        valid_spec["image"] = {"repo": "neo4j"}
        valid_spec["topology"]["primaries"] = 2
        valid_spec["storage"] = {}
        fields = [e.field for e in validate_create(valid_spec).errors]
        assert fields == ["spec.topology.primaries", "spec.image.tag"]

    def test_aggregates_remaining_errors(self, valid_spec):
        valid_spec["storage"]["size"] = "lots"
        valid_spec["auth"] = {"provider": "ldap"}
        valid_spec["tls"] = {"mode": "cert-manager"}
        fields = {e.field for e in validate_create(valid_spec).errors}
        assert fields == {"spec.storage.size", "spec.auth.secretRef", "spec.tls.issuerRef.name"}

    def test_unknown_field_is_reported(self, valid_spec):
        valid_spec["replicas"] = 3
        result = validate_create(valid_spec)
        assert result.errors[0].field == "spec.replicas"

    def test_revalidation_is_idempotent(self, valid_spec):
        assert validate_create(valid_spec).errors == validate_create(valid_spec).errors == []

    def test_raise_for_errors(self, valid_spec):
        valid_spec["topology"]["primaries"] = 2
        with pytest.raises(ValidationFailed) as exc:
            validate_create(valid_spec).raise_for_errors()
        assert "primaries must be at least 3 for quorum" in str(exc.value)


class TestValidateUpdate:
    def test_unchanged_spec_is_valid(self, valid_spec):
        assert validate_update(valid_spec, valid_spec).allowed

    def test_minor_upgrade_allowed(self, valid_spec):
        new = {**valid_spec, "image": {**valid_spec["image"], "tag": "5.27.0"}}
        assert validate_update(valid_spec, new).allowed

    def test_rejects_upgrade_from_unsupported_version(self, valid_spec):
        old = {**valid_spec, "image": {**valid_spec["image"], "tag": "5.25.9"}}
        new = {**valid_spec, "image": {**valid_spec["image"], "tag": "5.26.0"}}
        result = validate_update(old, new)
        assert [e.message for e in result.errors] == ["only Neo4j 5.26+ versions are supported"]

    def test_calendar_to_legacy_rejected(self, valid_spec):
        old = {**valid_spec, "image": {**valid_spec["image"], "tag": "2025.1.0"}}
        new = {**valid_spec, "image": {**valid_spec["image"], "tag": "5.26.3"}}
        result = validate_update(old, new)
        assert result.errors[0].message == "downgrade from Calendar to Legacy is not supported"
        assert result.errors[0].reason == ErrorReason.DOWNGRADE_REJECTED

    def test_quorum_reduction_and_bad_jump_reported_together(self, valid_spec):
        old = {**valid_spec, "topology": {"primaries": 3}}
        new = {
            **valid_spec,
            "topology": {"primaries": 1},
            "image": {**valid_spec["image"], "tag": "2025.1.0"},
        }
        old["image"] = {**valid_spec["image"], "tag": "2025.2.0"}
        messages = [e.message for e in validate_update(old, new).errors]
        assert "cannot reduce primaries below 3" in messages
        assert any(m.startswith("downgrades are not supported") for m in messages)

    def test_edition_failure_skips_update_rules(self, valid_spec):
        new = {
            **valid_spec,
            "edition": "community",
            "topology": {"primaries": 1},
            "image": {**valid_spec["image"], "tag": "5.25.0"},
        }
        result = validate_update(valid_spec, new)
        assert [e.field for e in result.errors] == ["spec.edition"]

    def test_strategy_checked_only_when_tag_changes(self, valid_spec):
        bad_strategy = {"strategy": "BlueGreen"}
        old = dict(valid_spec)
        new = {**valid_spec, "upgradeStrategy": bad_strategy}
        assert validate_update(old, new).allowed

        new["image"] = {**valid_spec["image"], "tag": "5.27.0"}
        result = validate_update(old, new)
        assert [e.field for e in result.errors] == ["spec.upgradeStrategy.strategy"]

    def test_storage_class_change_warns(self, valid_spec):
        new = {**valid_spec, "storage": {"className": "fast", "size": "10Gi"}}
        result = validate_update(valid_spec, new)
        assert result.allowed
        assert len(result.warnings) == 1


class TestAdmissionHandlers:
    def test_mutate_sets_defaulted_spec(self):
        patch = {}
        spec = {"image": {"repo": "neo4j", "tag": "5.26.0"}, "topology": {"primaries": 2}}
        default_cluster(spec=spec, patch=patch, name="graph", namespace="db")
        assert patch["spec"]["topology"]["primaries"] == 3
        assert patch["spec"]["edition"] == "enterprise"

    def test_mutate_leaves_unparseable_spec_alone(self):
        patch = {}
        default_cluster(spec={"bogus": True}, patch=patch, name="graph", namespace="db")
        assert patch == {}

    def test_validate_rejects_with_422(self, valid_spec):
        valid_spec["topology"]["primaries"] = 2
        with pytest.raises(kopf.AdmissionError) as exc:
            validate_cluster(
                spec=valid_spec, operation="CREATE", warnings=[], name="graph", namespace="db"
            )
        assert exc.value.code == 422
        assert "primaries must be at least 3 for quorum" in str(exc.value)

    def test_validate_update_uses_old_object(self, valid_spec):
        old = {"spec": {**valid_spec, "image": {**valid_spec["image"], "tag": "2025.1.0"}}}
        with pytest.raises(kopf.AdmissionError) as exc:
            validate_cluster(
                spec=valid_spec, operation="UPDATE", warnings=[], name="graph", namespace="db", old=old
            )
        assert "downgrade from Calendar to Legacy" in str(exc.value)

    def test_validate_passes_warnings(self, valid_spec):
        valid_spec["topology"]["primaries"] = 9
        warnings = []
        validate_cluster(
            spec=valid_spec, operation="CREATE", warnings=warnings, name="graph", namespace="db"
        )
        assert len(warnings) == 1

    def test_delete_is_ignored(self):
        assert validate_cluster(
            spec={}, operation="DELETE", warnings=Mock(), name="graph", namespace="db"
        ) is None
