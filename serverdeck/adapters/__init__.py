"""Adapters — bindings to the outside world.

Public re-exports for convenient access.
"""

from serverdeck.adapters.transport import (
    CommandTransport,
    LocalTransport,
    MockTransport,
    SSHTransport,
    connect_ssh,
)

__all__ = [
    "CommandTransport",
    "LocalTransport",
    "MockTransport",
    "SSHTransport",
    "connect_ssh",
]
