"""
CLI layer for saasbackup.

Provides a Typer application whose commands delegate to the connector
registry and the job orchestrator. This package handles only terminal
transport: argument parsing, coloured output and table formatting.

Entry point::

    saasbackup --help
"""

from saasbackup.cli.app import app

__all__ = ["app"]
