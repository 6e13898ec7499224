"""Observability — logging setup shared by every entrypoint."""

from serverdeck.core.observability.logging_config import setup_logging

__all__ = ["setup_logging"]
