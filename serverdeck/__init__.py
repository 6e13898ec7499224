"""serverdeck — inspect and operate server software over one command channel."""

__version__ = "0.1.0"
