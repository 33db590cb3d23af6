"""crmkit CLI entry point."""

import os

import click


@click.group()
def cli():
    """crmkit - collection-driven records CLI."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str, port: int, reload: bool):
    """Start the crmkit API server."""
    import uvicorn

    uvicorn.run(
        "crmkit.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level=os.environ.get("CRMKIT_LOG_LEVEL", "info"),
    )


# Register subcommand groups
from crmkit.cli.collections_cmd import collections  # noqa: E402

cli.add_command(collections)
