"""
CLI commands for databases — list, create, delete, backup.

Thin wrappers over the aggregator's database operations. ``--engine``
accepts any engine alias (mariadb, postgres, ...).
"""

from __future__ import annotations

import click

from serverdeck.ui.cli.common import echo_json, get_config, report, run_on_host

_ENGINE_OPTION = click.option("--engine", "-e", default="mysql", show_default=True, help="Database engine.")


def _aggregator(ctx: click.Context):
    from serverdeck.core.services.aggregator import ServerServiceAggregator

    return ServerServiceAggregator(timeouts=get_config(ctx).timeouts)


@click.group()
def db() -> None:
    """Databases on the host."""


@db.command("list")
@click.option("--engine", "-e", "engines", multiple=True, help="Only these engines (default: mysql, postgresql).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_databases(ctx: click.Context, engines: tuple[str, ...], as_json: bool) -> None:
    """List databases of every installed engine."""
    aggregator = _aggregator(ctx)
    found = run_on_host(ctx, lambda session: aggregator.fetch_databases(session, engines or ("mysql", "postgresql")))

    if as_json:
        echo_json(found)
        return

    if not found:
        click.secho("   No database engine installed", fg="yellow")
        return
    for engine, databases in found.items():
        click.secho(f"   {engine} ({len(databases)})", fg="cyan", bold=True)
        for database in databases:
            size = f"  {database.size}" if database.size else ""
            click.echo(f"      • {database.name}{size}")


@db.command("create")
@click.argument("name")
@_ENGINE_OPTION
@click.option("--user", "username", default=None, help="Also create this user with full rights (MySQL).")
@click.option("--password", default=None, help="Password for --user.")
@click.pass_context
def create_database(ctx: click.Context, name: str, engine: str, username: str | None, password: str | None) -> None:
    """Create database NAME."""
    aggregator = _aggregator(ctx)
    ok = run_on_host(
        ctx, lambda session: aggregator.create_database(session, name, engine, username=username, password=password)
    )
    report(ok, f"Created database {name}", f"Could not create database {name}")


@db.command("delete")
@click.argument("name")
@_ENGINE_OPTION
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete_database(ctx: click.Context, name: str, engine: str, yes: bool) -> None:
    """Drop database NAME."""
    if not yes:
        click.confirm(f"Drop {engine} database '{name}'?", abort=True)
    aggregator = _aggregator(ctx)
    ok = run_on_host(ctx, lambda session: aggregator.delete_database(session, name, engine))
    report(ok, f"Dropped database {name}", f"Could not drop database {name}")


@db.command("backup")
@click.argument("name")
@_ENGINE_OPTION
@click.pass_context
def backup_database(ctx: click.Context, name: str, engine: str) -> None:
    """Dump database NAME to a file on the host."""
    aggregator = _aggregator(ctx)
    path = run_on_host(ctx, lambda session: aggregator.backup_database(session, name, engine))
    report(path is not None, f"Backed up {name} to {path}", f"Could not back up {name}")
