"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before anything imports the settings module so
the global settings never point at a real Redis server.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("STORAGE_TYPE", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")
