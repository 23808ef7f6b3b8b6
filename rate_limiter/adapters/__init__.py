"""Adapters for external resources used by the rate limiter."""
