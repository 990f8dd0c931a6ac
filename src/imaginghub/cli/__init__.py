"""CLI commands using Typer."""

import typer

from imaginghub.cli.db import app as db_app
from imaginghub.cli.handshakes import app as handshakes_app
from imaginghub.cli.sessions import app as sessions_app

app = typer.Typer(name="imaginghub", help="Imaging Hub CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(handshakes_app, name="handshakes")
app.add_typer(sessions_app, name="sessions")


@app.command()
def version():
    """Show version information."""
    from imaginghub import __version__

    typer.echo(f"Imaging Hub v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the API server."""
    import uvicorn

    from imaginghub.logging import get_uvicorn_log_config

    uvicorn.run(
        "imaginghub.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


@app.command()
def worker(
    concurrency: int = typer.Option(2, help="Number of concurrent tasks"),
):
    """Run the background task worker (session sweeps)."""
    import asyncio

    from saq import Worker

    from imaginghub.logging import setup_logging
    from imaginghub.tasks import get_queue_settings

    setup_logging()
    settings = get_queue_settings()

    typer.echo(f"Starting worker with concurrency={concurrency}")

    async def run_worker():
        w = Worker(
            queue=settings["queue"],
            functions=settings["functions"],
            concurrency=concurrency,
            cron_jobs=settings.get("cron_jobs"),
            startup=settings.get("startup"),
            shutdown=settings.get("shutdown"),
        )
        await w.start()

    asyncio.run(run_worker())


if __name__ == "__main__":
    app()
