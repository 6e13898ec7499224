"""
CLI plumbing shared by every command — config, session, event loop.

Commands are synchronous click callbacks. Each one hands an async
operation to ``run_on_host``, which loads the configuration, opens a
session on the selected host, runs the operation, and closes the
session again.

Tests inject a session factory through the click context object:

    runner.invoke(cli, ["status"], obj={"session_factory": factory})
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
from pydantic import BaseModel

from serverdeck.core.config.loader import ConfigError, ServerDeckConfig, load_config
from serverdeck.core.config.sessions import open_session
from serverdeck.core.errors import ServerDeckError, SessionNotAvailable
from serverdeck.core.session import ServerSession

T = TypeVar("T")


def get_config(ctx: click.Context) -> ServerDeckConfig:
    """Load (once per invocation) the configuration named on the command line."""
    config = ctx.obj.get("config")
    if config is None:
        try:
            config = load_config(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(1)
        ctx.obj["config"] = config
    return config


def run_on_host(ctx: click.Context, operation: Callable[[ServerSession], Awaitable[T]]) -> T:
    """Run ``operation`` against a fresh session on the selected host."""
    config = get_config(ctx)
    try:
        host = config.host(ctx.obj.get("host"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    factory = ctx.obj.get("session_factory") or open_session

    async def _run() -> T:
        session = await factory(host, config.timeouts)
        async with session:
            return await operation(session)

    try:
        return asyncio.run(_run())
    except SessionNotAvailable as e:
        click.secho(f"❌ Cannot reach {host.name}: {e}", fg="red")
        sys.exit(1)
    except ServerDeckError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def echo_json(data: Any) -> None:
    """Print models, lists of models, or plain data as indented JSON."""
    click.echo(json.dumps(to_jsonable(data), indent=2))


def to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, dict):
        return {k: to_jsonable(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_jsonable(v) for v in data]
    return data


def report(ok: bool, success: str, failure: str) -> None:
    """Print a one-line outcome; exit 1 on failure."""
    if ok:
        click.secho(f"✅ {success}", fg="green")
    else:
        click.secho(f"❌ {failure}", fg="red")
        sys.exit(1)
