"""CLI commands for EduStride.

Provides command-line interface using Typer:
- edustride serve: Run the API server
- edustride init-db: Create the database tables

Usage:
    edustride --help
    edustride serve --port 8080
"""

import asyncio

import typer

from edustride.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="edustride",
    help="EduStride: realtime education portfolio service",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")


@app.callback()
def callback() -> None:
    """EduStride: realtime education portfolio service."""
    pass


@app.command("init-db")
def init_db_command() -> None:
    """Create any missing database tables."""
    from edustride.persistence.db import close_db, init_db

    async def run() -> None:
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(run())
    typer.echo("Database tables created")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
