"""Collection CLI commands - list, show and validate."""

import json
import os
from pathlib import Path

import click

from crmkit.errors import ConfigurationError
from crmkit.metadata.registry import CollectionRegistry
from crmkit.metadata.validator import validate_metadata_dir


def _resolve_metadata_path() -> Path:
    """CRMKIT_METADATA_PATH, else ``metadata/`` beside backend/ or in cwd."""
    env_path = os.environ.get("CRMKIT_METADATA_PATH")
    if env_path:
        return Path(env_path)
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return base_path / "metadata"


def _load_registry() -> CollectionRegistry:
    metadata_path = _resolve_metadata_path()
    if not metadata_path.exists():
        click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
        raise SystemExit(1)
    try:
        return CollectionRegistry.from_path(metadata_path)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)


@click.group()
def collections():
    """Collection commands."""
    pass


@collections.command("list")
def list_cmd():
    """List registered collections."""
    registry = _load_registry()
    if not len(registry):
        click.echo("No collections found.")
        return
    for descriptor in registry.list():
        click.echo(f"{descriptor.key:<20} {descriptor.label} ({len(descriptor.fields)} fields)")


@collections.command("show")
@click.argument("key")
def show_cmd(key: str):
    """Print a collection descriptor as JSON."""
    registry = _load_registry()
    descriptor = registry.get(key)
    if descriptor is None:
        click.echo(
            click.style(f"Unknown collection '{key}'.", fg="red")
            + f" Available collections: {', '.join(registry.keys()) or '(none)'}",
            err=True,
        )
        raise SystemExit(1)
    click.echo(json.dumps(descriptor.to_dict(), indent=2))


@collections.command()
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
def validate(strict: bool):
    """Validate collection YAML files against JSON Schemas and each other."""
    metadata_path = _resolve_metadata_path()
    if not metadata_path.exists():
        click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
        raise SystemExit(1)

    issues = validate_metadata_dir(metadata_path, strict=strict)
    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    registry = CollectionRegistry.from_path(metadata_path)
    click.echo(f"\nLoaded {len(registry)} collections:")
    for descriptor in registry.list():
        click.echo(f"  ✓ {descriptor.key} ({len(descriptor.fields)} fields)")

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))
