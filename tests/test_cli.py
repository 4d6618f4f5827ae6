"""Test the command line interface."""

import yaml
from typer.testing import CliRunner

from neo4jop.cli import app

runner = CliRunner()


def write_manifest(path, spec):
    manifest = {
        "apiVersion": "neo4j.neo4j.com/v1alpha1",
        "kind": "Neo4jEnterpriseCluster",
        "metadata": {"name": "graph"},
        "spec": spec,
    }
    path.write_text(yaml.safe_dump(manifest))
    return path


class TestValidateCommand:
    def test_valid_manifest(self, tmp_path, valid_spec):
        path = write_manifest(tmp_path / "cluster.yaml", valid_spec)
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_defaults_fix_even_primaries(self, tmp_path, valid_spec):
        valid_spec["topology"]["primaries"] = 4
        path = write_manifest(tmp_path / "cluster.yaml", valid_spec)
        assert runner.invoke(app, ["validate", str(path)]).exit_code == 0

        result = runner.invoke(app, ["validate", str(path), "--no-defaults"])
        assert result.exit_code == 1
        assert "primaries must be odd to maintain quorum" in result.output

    def test_update_check(self, tmp_path, valid_spec):
        old_spec = {**valid_spec, "image": {**valid_spec["image"], "tag": "2025.1.0"}}
        old = write_manifest(tmp_path / "old.yaml", old_spec)
        new = write_manifest(tmp_path / "new.yaml", valid_spec)
        result = runner.invoke(app, ["validate", str(new), "--old", str(old)])
        assert result.exit_code == 1
        assert "downgrade from Calendar to Legacy is not supported" in result.output


class TestCheckUpgradeCommand:
    def test_allowed(self):
        result = runner.invoke(app, ["check-upgrade", "5.26.3", "2025.1.0"])
        assert result.exit_code == 0
        assert "allowed" in result.output

    def test_rejected(self):
        result = runner.invoke(app, ["check-upgrade", "5.25.9", "5.26.0"])
        assert result.exit_code == 1
        assert "UnsupportedUpgradePath" in result.output
        assert "only Neo4j 5.26+ versions are supported" in result.output


def test_validate_models():
    result = runner.invoke(app, ["validate-models"])
    assert result.exit_code == 0
    assert "neo4j.neo4j.com/v1alpha1/Neo4jEnterpriseCluster" in result.output


def test_generate_crds(tmp_path):
    result = runner.invoke(app, ["generate-crds", "-o", str(tmp_path), "--force", "--validate"])
    assert result.exit_code == 0
    assert "CRD validation passed" in result.output
