"""Reference management API command for the policysync CLI.

Commands:
- server: Run the reference management API
"""

from __future__ import annotations

import os

import click


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to database file (default: POLICYSYNC_DB_PATH or ./policysync.db).",
)
@click.option(
    "--api-key",
    default=None,
    help="Require this bearer key (default: POLICYSYNC_API_KEY, or no auth).",
)
@click.option(
    "--finalizing-seconds",
    type=float,
    default=None,
    help="Report the organization as finalizing for this long after start.",
)
def server(
    host: str,
    port: int,
    db_path: str | None,
    api_key: str | None,
    finalizing_seconds: float | None,
) -> None:
    """Run the reference management API.

    Examples:

        # Local API on port 8000
        policysync server

        # Exercise the eventual consistency guard
        policysync server --finalizing-seconds 20
    """
    import uvicorn

    if db_path:
        os.environ["POLICYSYNC_DB_PATH"] = db_path
    if api_key:
        os.environ["POLICYSYNC_API_KEY"] = api_key
    if finalizing_seconds is not None:
        os.environ["POLICYSYNC_FINALIZING_SECONDS"] = str(finalizing_seconds)

    click.echo(f"Starting management API on http://{host}:{port}")
    uvicorn.run(
        "policysync.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
    )
