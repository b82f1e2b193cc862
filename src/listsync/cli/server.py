"""Server command for listsync CLI.

Commands:
- serve: Run the sync server with uvicorn
"""

from __future__ import annotations

import dataclasses

import click

from listsync.cli.options import db_path_option, resolve_db_path


@click.command()
@click.option("--host", default=None, help="Interface to bind (default: LISTSYNC_HOST or 127.0.0.1).")
@click.option("--port", type=int, default=None, help="Port to listen on (default: LISTSYNC_PORT or 8000).")
@db_path_option
def serve(host: str | None, port: int | None, db_path: str | None) -> None:
    """Run the sync server.

    Examples:

        # Serve ./listsync.db on localhost:8000
        listsync serve

        # Listen on all interfaces with a custom database
        listsync serve --host 0.0.0.0 --db-path /var/lib/listsync/listsync.db
    """
    import uvicorn

    from listsync.core.config import ServerConfig
    from listsync.server.app import create_app, setup_logging
    from listsync.server.database import Database

    config = ServerConfig.from_env()
    config = dataclasses.replace(
        config,
        db_path=resolve_db_path(db_path) if db_path else config.db_path,
        host=host or config.host,
        port=port or config.port,
    )
    setup_logging(config.log_path)

    click.echo(f"Database: {config.db_path}")
    click.echo(f"Listening on http://{config.host}:{config.port}")

    db = Database(config.db_path)
    try:
        uvicorn.run(create_app(db, config), host=config.host, port=config.port)
    finally:
        db.close()
