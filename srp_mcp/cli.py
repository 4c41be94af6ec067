"""CLI entry point for srp-mcp."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from srp_mcp.compaction.policy import POLICIES
from srp_mcp.config import ConfigError
from srp_mcp.ids import KINDS


# Default config template
CONFIG_TEMPLATE = """\
server:
  name: SRP-MCP Server
  version: 1.0.0
  transport: stdio  # stdio | http | sse
  host: 127.0.0.1   # http/sse only
  port: 8080

database:
  path: .srp/srp.db  # relative to project root; $SRP_DB_PATH overrides

compaction:
  enabled: true
  policy: high_only  # high_only | high_and_medium | all

logging:
  level: INFO
"""

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _load(root: Path) -> dict:
    from srp_mcp.config import load_config

    try:
        return load_config(root)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
def cli() -> None:
    """SRP-MCP: structured notes and tasks for AI agents."""


@cli.command()
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)
def init(project_root: str) -> None:
    """Initialize .srp/ directory with config and an empty database."""
    from srp_mcp.config import resolve_db_path
    from srp_mcp.ids import IDGenerator
    from srp_mcp.storage import Database

    root = Path(project_root)
    srp_dir = root / ".srp"

    if srp_dir.exists():
        click.echo(f".srp/ already exists at {srp_dir}")
        raise SystemExit(1)

    srp_dir.mkdir(parents=True)
    config_path = srp_dir / "config.yaml"
    config_path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {config_path}")

    # Load config through the standard path to validate it
    config = _load(root)

    db_path = resolve_db_path(config, root)
    Database(db_path)
    IDGenerator(db_path)
    click.echo(f"Created {db_path}")

    click.echo("\nSRP-MCP initialized. Edit .srp/config.yaml to customize.")


@cli.command()
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)
def run(project_root: str) -> None:
    """Run the MCP server (foreground)."""
    from srp_mcp.config import log_level
    from srp_mcp.server import run_server

    root = Path(project_root)
    config = _load(root)

    # stderr only: stdout carries the stdio transport
    logging.basicConfig(
        level=log_level(config),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )

    click.echo(f"Starting SRP-MCP server for {root}...", err=True)
    run_server(config, root)


@cli.command()
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)
def status(project_root: str) -> None:
    """Show store status."""
    from srp_mcp.server import get_status

    root = Path(project_root)
    config = _load(root)
    info = get_status(config, root)

    if "error" in info:
        click.echo(f"Error: {info['error']}")
        raise SystemExit(1)

    click.echo(f"Database: {info['db_path']}")
    click.echo(f"  Tasks: {info['counts']['tasks']}")
    click.echo(f"  Notes: {info['counts']['notes']}")

    click.echo("\nNext sequence today:")
    for kind, seq in info["next_sequence"].items():
        click.echo(f"  {kind}: {seq:03d}")

    compaction = info["compaction"]
    state = "enabled" if compaction["enabled"] else "disabled"
    click.echo(f"\nCompaction hook: {state} (policy={compaction['policy']})")


@cli.command()
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)
@click.option(
    "--input",
    "input_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="JSON or YAML hook payload (sessionId, agentId, items).",
)
@click.option(
    "--policy",
    type=click.Choice(sorted(POLICIES)),
    default=None,
    help="Override the configured retention policy.",
)
def evaluate(project_root: str, input_path: str, policy: str | None) -> None:
    """Evaluate which items survive a compaction and print the result."""
    import yaml

    from srp_mcp.compaction import EvaluationContext, PreCompactionNotifier, get_policy

    root = Path(project_root)
    config = _load(root)

    try:
        payload = yaml.safe_load(Path(input_path).read_text())
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Cannot parse {input_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise click.ClickException(f"{input_path} must contain a mapping")

    try:
        context = EvaluationContext.from_dict(payload)
    except (KeyError, TypeError) as exc:
        raise click.ClickException(f"Invalid item descriptor in {input_path}: {exc}") from exc

    notifier = PreCompactionNotifier(
        policy=get_policy(policy or config["compaction"]["policy"]),
        enabled=bool(config["compaction"]["enabled"]),
    )
    result = notifier.execute(context)
    click.echo(json.dumps(result.to_dict(), indent=2))

    if result.status.value == "error":
        raise SystemExit(1)


@cli.command("new-id")
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)
@click.option(
    "--kind",
    type=click.Choice(KINDS),
    required=True,
    help="ID kind to allocate.",
)
def new_id_cmd(project_root: str, kind: str) -> None:
    """Allocate and print the next ID of a kind."""
    from srp_mcp.config import resolve_db_path
    from srp_mcp.ids import IDGenerator, IDGeneratorError

    root = Path(project_root)
    config = _load(root)

    with IDGenerator(resolve_db_path(config, root)) as ids:
        try:
            click.echo(ids.next_id(kind))
        except IDGeneratorError as exc:
            raise click.ClickException(str(exc)) from exc
