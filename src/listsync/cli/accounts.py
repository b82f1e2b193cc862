"""Account administration commands for listsync CLI.

Commands:
- create-account: Create an account and print its first token
- issue-token: Issue a new token for an existing account
- devices: List the devices of an account
"""

from __future__ import annotations

import sys
from datetime import timedelta

import click
from sqlalchemy.exc import IntegrityError

from listsync.cli.options import db_path_option, resolve_db_path
from listsync.server.database import Database


@click.command("create-account")
@click.argument("name")
@db_path_option
def create_account(name: str, db_path: str | None) -> None:
    """Create an account and print a bearer token for it."""
    db = Database(resolve_db_path(db_path))
    try:
        try:
            account = db.create_account(name)
        except IntegrityError:
            click.echo(f"Error: Account '{name}' already exists", err=True)
            sys.exit(1)
        raw_token, _ = db.create_token(account.id)
    finally:
        db.close()

    click.echo(f"Created account '{account.name}' (id {account.id})")
    click.echo(f"Token: {raw_token}")


@click.command("issue-token")
@click.argument("name")
@click.option(
    "--expires-in-days",
    type=int,
    default=None,
    help="Token lifetime in days (default: never expires).",
)
@db_path_option
def issue_token(name: str, expires_in_days: int | None, db_path: str | None) -> None:
    """Issue a new bearer token for an existing account."""
    db = Database(resolve_db_path(db_path))
    try:
        account = db.get_account_by_name(name)
        if account is None:
            click.echo(f"Error: Account '{name}' not found", err=True)
            sys.exit(1)
        expires_in = timedelta(days=expires_in_days) if expires_in_days else None
        raw_token, token = db.create_token(account.id, expires_in=expires_in)
    finally:
        db.close()

    click.echo(f"Token: {raw_token}")
    if token.expires_at:
        click.echo(f"Expires: {token.expires_at.isoformat()}")


@click.command()
@click.argument("name")
@db_path_option
def devices(name: str, db_path: str | None) -> None:
    """List the devices of an account with their last sync time."""
    db = Database(resolve_db_path(db_path))
    try:
        account = db.get_account_by_name(name)
        if account is None:
            click.echo(f"Error: Account '{name}' not found", err=True)
            sys.exit(1)
        account_devices = db.list_devices(account.id)
    finally:
        db.close()

    if not account_devices:
        click.echo("No devices have synced yet.")
        return
    for device in account_devices:
        click.echo(
            f"{device.device_id}  {device.display_name}  "
            f"last sync {device.last_sync_at.isoformat()}"
        )
