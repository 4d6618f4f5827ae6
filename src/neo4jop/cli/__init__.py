from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())

app = typer.Typer(
    help="neo4jop: Kubernetes operator for Neo4j Enterprise clusters",
    add_completion=False,
)


def _load_spec(path):
    """Read a cluster manifest (or a bare spec) from a YAML file."""
    with open(path, "r") as f:
        document = yaml.safe_load(f) or {}
    if "spec" in document and isinstance(document["spec"], dict):
        return document["spec"]
    return document


@app.command("operator")
def run_operator():
    """Run the Kubernetes operator (connects to cluster)."""
    from neo4jop.main import main

    main()


@app.command("generate-crds")
def generate_crds(
    output: Annotated[
        str, typer.Option("-o", "--output", help="Output directory")
    ] = "crds/generated",
    force: Annotated[bool, typer.Option("--force", help="Force regeneration")] = False,
    validate: Annotated[
        bool, typer.Option("--validate", help="Validate generated CRDs")
    ] = False,
):
    """Generate CRD YAML files from pydantic models."""
    from neo4jop.crd.generator import CRDManager

    manager = CRDManager(output_dir=Path(output))
    if not manager.generate_all_crds(force=force):
        typer.echo("No CRDs generated (models unchanged)")
        return

    typer.echo(f"CRDs generated successfully in {output}")
    if validate:
        if not manager.validate_generated_crds():
            typer.echo("CRD validation failed")
            raise typer.Exit(1)
        typer.echo("CRD validation passed")


@app.command("validate-models")
def validate_models():
    """Validate CRD models without generating files."""
    from neo4jop.crd.generator import CRDManager

    try:
        manager = CRDManager()
        crds = manager.get_crds_as_dict()
        models = manager.registry.get_all_models()
    except Exception as e:
        typer.echo(f"Model validation failed: {e}")
        raise typer.Exit(1)

    typer.echo(f"Validated {len(models)} CRD models")
    for key in models.keys():
        typer.echo(f"  - {key}")
    typer.echo(f"Generated {len(crds)} CRDs in memory")


@app.command("validate")
def validate(
    file: Annotated[Path, typer.Argument(help="Cluster manifest to check")],
    old: Annotated[
        Optional[Path], typer.Option("--old", help="Stored manifest, to check as an update")
    ] = None,
    defaults: Annotated[
        bool, typer.Option("--defaults/--no-defaults", help="Apply defaults before a create check")
    ] = True,
):
    """Run the admission checks against a manifest offline."""
    from neo4jop.validation import ClusterValidator
    from neo4jop.exceptions import ValidationFailed

    validator = ClusterValidator()
    spec = _load_spec(file)

    if old is not None:
        result = validator.validate_update(_load_spec(old), spec)
    else:
        if defaults:
            try:
                spec = validator.default(spec)
            except ValidationFailed as e:
                typer.echo(f"Invalid: {e}")
                raise typer.Exit(1)
        result = validator.validate_create(spec)

    for warning in result.warnings:
        typer.echo(f"Warning: {warning}")

    if not result.allowed:
        for error in result.errors:
            typer.echo(f"Invalid: {error}")
        raise typer.Exit(1)

    typer.echo(f"{file} is valid")


@app.command("check-upgrade")
def check_upgrade(
    current: Annotated[str, typer.Argument(help="Version the cluster runs now")],
    target: Annotated[str, typer.Argument(help="Version to move to")],
):
    """Tell whether an upgrade from CURRENT to TARGET is permitted."""
    from neo4jop.versioning import decide_upgrade

    decision = decide_upgrade(current, target)
    if decision.allowed:
        typer.echo(f"Upgrade {current} -> {target} is allowed")
        return

    typer.echo(f"Upgrade {current} -> {target} is rejected ({decision.code.value}): {decision.reason}")
    raise typer.Exit(1)


@app.command("upgrade-status")
def upgrade_status(
    name: Annotated[str, typer.Argument(help="Cluster name")],
    namespace: Annotated[str, typer.Option("-n", "--namespace")] = "default",
):
    """Show the rolling upgrade progress of a cluster."""
    import kubernetes
    from kubernetes.client.exceptions import ApiException

    from neo4jop.config import GROUP, PLURAL, VERSION
    from neo4jop.models.cluster import ClusterStatus

    kubernetes.config.load_kube_config()
    api = kubernetes.client.CustomObjectsApi()
    try:
        obj = api.get_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, name)
    except ApiException as e:
        typer.echo(f"Could not read {namespace}/{name}: {e.reason}")
        raise typer.Exit(1)

    status = ClusterStatus.model_validate(obj.get("status") or {})
    typer.echo(f"Cluster:  {namespace}/{name}")
    typer.echo(f"Desired:  {obj.get('spec', {}).get('image', {}).get('tag')}")
    typer.echo(f"Running:  {status.version or 'unknown'}")

    upgrade = status.upgradeStatus
    if upgrade is None:
        typer.echo("No upgrade recorded")
        return

    progress = upgrade.progress
    typer.echo(f"Phase:    {upgrade.phase}")
    if upgrade.step:
        member = ""
        if upgrade.currentOrdinal is not None:
            member = f" (member {upgrade.currentOrdinal}: {upgrade.memberStep})"
        typer.echo(f"Step:     {upgrade.step}{member}")
    typer.echo(f"Target:   {upgrade.targetVersion}")
    typer.echo(f"Progress: {progress.upgraded}/{progress.total} upgraded")
    if upgrade.message:
        typer.echo(f"Message:  {upgrade.message}")
    if upgrade.lastError:
        typer.echo(f"Error:    {upgrade.lastError}")
        raise typer.Exit(1)
