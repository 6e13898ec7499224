"""
Session factory — turn a HostConfig into a live ServerSession.
"""

from __future__ import annotations

import logging

from serverdeck.adapters.transport.local import LocalTransport
from serverdeck.adapters.transport.ssh import connect_ssh
from serverdeck.core.config.loader import HostConfig, TimeoutConfig
from serverdeck.core.session import ServerSession

logger = logging.getLogger(__name__)


async def open_session(host: HostConfig, timeouts: TimeoutConfig | None = None) -> ServerSession:
    """Open a session on ``host`` using the matching transport.

    Raises:
        SessionNotAvailable: If an SSH connection cannot be established.
    """
    default_timeout = (timeouts or TimeoutConfig()).default

    if host.local:
        logger.debug("Opening local session '%s'", host.name)
        return ServerSession(LocalTransport(default_timeout=default_timeout), label=host.name)

    transport = await connect_ssh(
        host=host.host,
        username=host.username,
        password=host.password,
        key_path=host.expanded_key_path,
        port=host.port,
        known_hosts=host.known_hosts,
        default_timeout=default_timeout,
    )
    return ServerSession(transport, label=host.name)
