"""Command transports — local shell, SSH, and a scriptable mock."""

from serverdeck.adapters.transport.base import DEFAULT_TIMEOUT, CommandTransport
from serverdeck.adapters.transport.local import LocalTransport
from serverdeck.adapters.transport.mock import MockTransport
from serverdeck.adapters.transport.ssh import SSHTransport, connect_ssh

__all__ = [
    "DEFAULT_TIMEOUT",
    "CommandTransport",
    "LocalTransport",
    "MockTransport",
    "SSHTransport",
    "connect_ssh",
]
