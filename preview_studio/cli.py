import click


@click.group()
def main() -> None:
    """Preview Studio - per-pull-request preview environments."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from PREVIEW_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from PREVIEW_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the orchestrator server."""
    import uvicorn

    from preview_studio.orchestrator.settings import PreviewSettings

    settings = PreviewSettings()

    uvicorn.run(
        "preview_studio.orchestrator.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Drain timeout plus a buffer for closing clients and the DB pool.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


@main.group()
def db() -> None:
    """Workspace registry database commands."""


@db.command()
def init() -> None:
    """Create the registry tables if they do not exist."""
    import asyncio

    from preview_studio.orchestrator.db.engine import create_engine, create_tables
    from preview_studio.orchestrator.settings import PreviewSettings

    settings = PreviewSettings()
    if not settings.database_url:
        msg = "PREVIEW_DATABASE_URL is not set."
        raise click.ClickException(msg)

    async def _run() -> None:
        engine = create_engine(settings.database_url)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.echo("Registry tables created.")
