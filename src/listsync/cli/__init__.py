"""Command-line interface for listsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- serve: Run the sync server
- create-account: Create an account and print its first token
- issue-token: Issue a new token for an existing account
- devices: List the devices of an account
"""

from __future__ import annotations

import click

from listsync.cli.accounts import create_account, devices, issue_token
from listsync.cli.server import serve


@click.group()
@click.version_option(package_name="listsync")
def cli() -> None:
    """listsync - Offline-first list synchronization server."""


# Server commands
cli.add_command(serve)

# Account commands
cli.add_command(create_account)
cli.add_command(issue_token)
cli.add_command(devices)
