"""IP and token admission control for HTTP services."""

__version__ = "0.1.0"
