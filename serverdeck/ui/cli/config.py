"""
CLI commands for application configuration files.

``config show`` prints the live file; ``config apply`` uploads a local
file, validates it, and reloads only when validation passes.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from serverdeck.ui.cli.common import echo_json, get_config, run_on_host


@click.group()
def config() -> None:
    """Read and update application config files."""


@config.command("show")
@click.argument("app_id")
@click.pass_context
def show(ctx: click.Context, app_id: str) -> None:
    """Print the main config file of APP_ID."""
    from serverdeck.core.services.applications import ApplicationRegistry
    from serverdeck.core.services.sections import build_default_registry
    from serverdeck.core.services.state_store import ApplicationStateStore

    app = ApplicationRegistry().application_for_software(app_id)
    if app is None:
        click.secho(f"❌ Unknown application '{app_id}'", fg="red")
        sys.exit(1)
    section = app.section("config_file")
    if section is None:
        click.secho(f"❌ {app.name} has no config file section", fg="red")
        sys.exit(1)

    providers = build_default_registry()

    async def _load(session):
        async with ApplicationStateStore(app.id) as store:
            await providers.load_data(section, app, store, session)
            return store.state.config_path, store.state.config_content

    path, content = run_on_host(ctx, _load)
    if not ctx.obj.get("quiet"):
        click.secho(f"# {path}", fg="cyan")
    click.echo(content)


@config.command("apply")
@click.argument("app_id")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--path", "target", default=None, help="Remote path (default: the application's main config).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(ctx: click.Context, app_id: str, source: Path, target: str | None, as_json: bool) -> None:
    """Upload SOURCE as APP_ID's config, validate, and reload."""
    from serverdeck.core.services.aggregator import ServerServiceAggregator

    aggregator = ServerServiceAggregator(timeouts=get_config(ctx).timeouts)
    content = source.read_text(encoding="utf-8")
    result = run_on_host(ctx, lambda session: aggregator.update_config(session, app_id, content, path=target))

    if as_json:
        echo_json(result)
        sys.exit(0 if result.ok else 1)

    if not result.written:
        click.secho(f"❌ Could not write {result.path or 'config'}", fg="red")
        sys.exit(1)
    if not result.valid:
        click.secho(f"❌ {result.path} was written but failed validation; service not reloaded", fg="red")
        if result.validator_output:
            click.echo(result.validator_output)
        sys.exit(1)
    if not result.reloaded:
        click.secho(f"⚠️  {result.path} is valid but the reload failed", fg="yellow")
        sys.exit(1)
    click.secho(f"✅ {result.path} applied", fg="green")
