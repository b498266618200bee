"""
CLI module for Vessel.

Provides the command-line interface using Click.
"""

from vessel.cli.main import cli, main

__all__ = ["main", "cli"]
