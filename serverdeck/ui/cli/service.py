"""
CLI commands for service control.

Thin wrappers over ``ServerServiceAggregator.start_service`` and friends.
"""

from __future__ import annotations

import click

from serverdeck.ui.cli.common import get_config, report, run_on_host


@click.group()
def service() -> None:
    """Start, stop or restart a service on the host."""


def _control(ctx: click.Context, verb: str, name: str) -> None:
    from serverdeck.core.services.aggregator import ServerServiceAggregator

    aggregator = ServerServiceAggregator(timeouts=get_config(ctx).timeouts)
    action = getattr(aggregator, f"{verb}_service")
    ok = run_on_host(ctx, lambda session: action(session, name))
    report(ok, f"{_DONE[verb]} {name}", f"Could not {verb} {name}")


_DONE = {"start": "Started", "stop": "Stopped", "restart": "Restarted"}


@service.command()
@click.argument("name")
@click.pass_context
def start(ctx: click.Context, name: str) -> None:
    """Start NAME (e.g. nginx, php8.2-fpm, mariadb)."""
    _control(ctx, "start", name)


@service.command()
@click.argument("name")
@click.pass_context
def stop(ctx: click.Context, name: str) -> None:
    """Stop NAME."""
    _control(ctx, "stop", name)


@service.command()
@click.argument("name")
@click.pass_context
def restart(ctx: click.Context, name: str) -> None:
    """Restart NAME."""
    _control(ctx, "restart", name)


@service.command("apache-module")
@click.argument("module")
@click.option("--enable/--disable", "enabled", default=True, help="Enable (default) or disable MODULE.")
@click.pass_context
def apache_module(ctx: click.Context, module: str, enabled: bool) -> None:
    """Enable or disable apache MODULE (a2enmod/a2dismod), then restart apache."""
    from serverdeck.core.services.aggregator import ServerServiceAggregator

    aggregator = ServerServiceAggregator(timeouts=get_config(ctx).timeouts)
    ok = run_on_host(ctx, lambda session: aggregator.set_apache_module(session, module, enabled))
    action = "enable" if enabled else "disable"
    report(ok, f"{action.capitalize()}d apache module {module}", f"Could not {action} apache module {module}")
