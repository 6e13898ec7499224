"""
serverdeck — CLI entrypoint.

Usage:
    serverdeck --help
    serverdeck status
    serverdeck --host web1 section nginx logs
    python -m serverdeck.main apps --json
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from serverdeck import __version__
from serverdeck.core.observability.logging_config import level_from_flags, setup_logging
from serverdeck.ui.cli.common import echo_json, get_config, run_on_host


@click.group()
@click.version_option(version=__version__, prog_name="serverdeck")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (every remote command).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to serverdeck.yml (default: auto-detect).",
)
@click.option("--host", "-H", "host", default=None, help="Target host name from serverdeck.yml.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    host: str | None,
) -> None:
    """serverdeck — inspect and operate server software over SSH."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["host"] = host

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(level=level_from_flags(debug=debug, verbose=verbose, quiet=quiet), quiet_third_party=not debug)


# ── Catalog ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--category", default=None, help="Only applications in this category.")
@click.option("--probe", is_flag=True, help="Query the host for each application's lifecycle state.")
@click.pass_context
def apps(ctx: click.Context, as_json: bool, category: str | None, probe: bool) -> None:
    """List the applications serverdeck knows how to manage."""
    from serverdeck.core.models.application import ApplicationCategory
    from serverdeck.core.services.applications import ApplicationRegistry
    from serverdeck.core.services.lifecycle import ApplicationLifecycleManager

    registry = ApplicationRegistry()
    if category:
        try:
            definitions = registry.applications(ApplicationCategory(category.lower()))
        except ValueError:
            choices = ", ".join(c.value for c in ApplicationCategory)
            click.secho(f"❌ Unknown category '{category}'. Choose from: {choices}", fg="red")
            sys.exit(1)
    else:
        definitions = registry.all_applications()

    states = {}
    if probe:
        manager = ApplicationLifecycleManager(applications=registry)

        async def _probe(session):
            for app in definitions:
                await manager.refresh_state(app.id, session)
            return manager.states

        states = run_on_host(ctx, _probe)

    if as_json:
        echo_json([
            {
                "id": app.id,
                "name": app.name,
                "category": app.category.value,
                "sections": [s.id for s in app.sorted_sections],
                **({"state": states[app.id].model_dump(mode="json")} if app.id in states else {}),
            }
            for app in definitions
        ])
        return

    for app in definitions:
        line = f"   {app.name:<12} {app.category.value:<10} {', '.join(s.id for s in app.sorted_sections)}"
        click.echo(line)
        if app.id in states:
            click.echo(f"      → {states[app.id].display}")


# ── Status ──────────────────────────────────────────────────────


_STATUS_COLORS = {"running": "green", "stopped": "yellow", "not_installed": "white", "error": "red"}


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--app", "app_ids", multiple=True, help="Check these applications individually.")
@click.pass_context
def status(ctx: click.Context, as_json: bool, app_ids: tuple[str, ...]) -> None:
    """Show installed/running state of the server's main services."""
    from serverdeck.core.services.aggregator import ServerServiceAggregator

    aggregator = ServerServiceAggregator(timeouts=get_config(ctx).timeouts)

    async def _fetch(session):
        if app_ids:
            return await aggregator.fetch_status_concurrently(session, app_ids)
        return dict((await aggregator.fetch_installed_software(session)).items())

    statuses = run_on_host(ctx, _fetch)

    if as_json:
        echo_json(statuses)
        return

    if not ctx.obj.get("quiet"):
        click.secho("\n🖥  Services", fg="cyan", bold=True)
    for name, software in statuses.items():
        click.echo(f"   {name:<12} ", nl=False)
        click.secho(software.display, fg=_STATUS_COLORS.get(software.kind.value, "white"))
    click.echo()


# ── Sections ────────────────────────────────────────────────────


@cli.command()
@click.argument("app_id")
@click.argument("section_id", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def section(ctx: click.Context, app_id: str, section_id: str | None, as_json: bool) -> None:
    """Load one section of an application and print what it found.

    Without SECTION_ID the application's default section is loaded.
    """
    from serverdeck.core.services.applications import ApplicationRegistry
    from serverdeck.core.services.sections import build_default_registry
    from serverdeck.core.services.state_store import ApplicationStateStore

    app = ApplicationRegistry().application_for_software(app_id)
    if app is None:
        click.secho(f"❌ Unknown application '{app_id}'", fg="red")
        sys.exit(1)
    target = app.section(section_id) if section_id else app.default_section
    if target is None:
        choices = ", ".join(s.id for s in app.sorted_sections)
        click.secho(f"❌ {app.name} has no section '{section_id}'. Choose from: {choices}", fg="red")
        sys.exit(1)

    providers = build_default_registry(phpinfo_timeout=get_config(ctx).timeouts.phpinfo)

    async def _load(session):
        async with ApplicationStateStore(app.id) as store:
            await providers.load_data(target, app, store, session)
            return store.snapshot()

    state = run_on_host(ctx, _load)
    fields = state.model_dump(mode="json", exclude_defaults=True)
    fields.pop("loaded_sections", None)

    if as_json:
        echo_json(fields)
        return

    click.secho(f"\n{app.name} › {target.name}", fg="cyan", bold=True)
    for key, value in fields.items():
        if key == "application_id":
            continue
        if isinstance(value, list):
            click.secho(f"   {key} ({len(value)}):", bold=True)
            for item in value:
                click.echo(f"      {_one_line(item)}")
        elif isinstance(value, str) and "\n" in value:
            click.secho(f"   {key}:", bold=True)
            click.echo(value)
        else:
            click.echo(f"   {key}: {_one_line(value)}")
    click.echo()


def _one_line(value: object) -> str:
    if isinstance(value, dict):
        return "  ".join(f"{k}={v}" for k, v in value.items() if v not in (None, "", [], {}))
    return str(value)


# ── Register sub-command groups from serverdeck/ui/cli/ ─────────

from serverdeck.ui.cli.config import config  # noqa: E402
from serverdeck.ui.cli.db import db  # noqa: E402
from serverdeck.ui.cli.service import service  # noqa: E402
from serverdeck.ui.cli.versions import versions  # noqa: E402

cli.add_command(config)
cli.add_command(db)
cli.add_command(service)
cli.add_command(versions)


if __name__ == "__main__":
    cli()
