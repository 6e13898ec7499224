"""
CLI commands for side-by-side runtime versions (PHP, Node.js, Python).
"""

from __future__ import annotations

import sys

import click

from serverdeck.ui.cli.common import echo_json, report, run_on_host


@click.group()
def versions() -> None:
    """List and switch installed runtime versions."""


def _runtime(app_id: str):
    from serverdeck.core.services.applications import ApplicationRegistry
    from serverdeck.core.services.software import SoftwareServices

    app = ApplicationRegistry().application_for_software(app_id)
    runtime = SoftwareServices().runtime(app.id) if app else None
    if runtime is None:
        click.secho(f"❌ '{app_id}' has no switchable versions", fg="red")
        sys.exit(1)
    return runtime


@versions.command("list")
@click.argument("app_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_versions(ctx: click.Context, app_id: str, as_json: bool) -> None:
    """Installed versions of APP_ID, newest first."""
    from serverdeck.core.services.versions.compare import sort_versions_desc

    runtime = _runtime(app_id)

    async def _list(session):
        return await runtime.get_version(session), await runtime.installed_versions(session)

    active, installed = run_on_host(ctx, _list)
    installed = sort_versions_desc(installed)

    if as_json:
        echo_json({"active": active, "installed": installed})
        return

    if not installed:
        click.secho(f"   No {app_id} versions found", fg="yellow")
        return
    for version in installed:
        marker = " ← active" if active and version == active else ""
        click.echo(f"   {version}{marker}")


@versions.command("switch")
@click.argument("app_id")
@click.argument("version")
@click.pass_context
def switch_version(ctx: click.Context, app_id: str, version: str) -> None:
    """Make VERSION the active version of APP_ID."""
    runtime = _runtime(app_id)
    outcome = run_on_host(ctx, lambda session: runtime.switch_version(session, version))

    if ctx.obj.get("verbose"):
        for attempt in outcome.attempts:
            mark = "✓" if attempt.success else "✗"
            click.echo(f"   {mark} {attempt.strategy}")
    via = f" via {outcome.strategy}" if outcome.used_fallback else ""
    report(outcome.success, f"{app_id} {version} is now active{via}", f"Could not switch {app_id} to {version}")
