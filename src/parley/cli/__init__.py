"""
CLI module for Parley.

Provides the command-line interface using Click.
"""

from parley.cli.main import cli, main

__all__ = ["main", "cli"]
