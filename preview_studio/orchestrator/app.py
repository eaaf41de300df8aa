from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger

from preview_studio.orchestrator.credentials import create_credential_provider
from preview_studio.orchestrator.db.engine import create_engine, create_session_factory, create_tables
from preview_studio.orchestrator.execution.controller import LifecycleController
from preview_studio.orchestrator.log import setup_logging
from preview_studio.orchestrator.managers.comments import CommentSynchronizer, create_github_client
from preview_studio.orchestrator.managers.sandbox import SandboxDriver, create_sandbox_client
from preview_studio.orchestrator.registry import MemoryWorkspaceRegistry, SqlWorkspaceRegistry, WorkspaceRegistry
from preview_studio.orchestrator.settings import PreviewSettings, get_settings
from preview_studio.orchestrator.tracker import EventTracker


async def _create_registry(app: FastAPI, settings: PreviewSettings) -> WorkspaceRegistry:
    """Create the registry backend based on configuration."""
    if not settings.database_url:
        logger.warning("PREVIEW_DATABASE_URL not set -- workspace records are kept in memory")
        return MemoryWorkspaceRegistry()

    engine = create_engine(settings.database_url)
    app.state.db_engine = engine
    await create_tables(engine)
    logger.info("PostgreSQL: connected (pool_size=5, max_overflow=5)")
    return SqlWorkspaceRegistry(create_session_factory(engine))


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    auth_token = settings.resolve_auth_token()
    if not settings.auth_token:
        logger.warning("No PREVIEW_AUTH_TOKEN set -- generated token: {}", auth_token)
    _app.state.auth_token = auth_token

    logger.info("Preview orchestrator starting (host={}, port={})", settings.host, settings.port)
    logger.info("Sandbox provider: {}", settings.sandbox_api_url)

    _app.state.db_engine = None
    registry = await _create_registry(_app, settings)

    sandbox_client = create_sandbox_client(settings)
    github_client = create_github_client(settings)
    credentials = create_credential_provider(settings, github_client)

    driver = SandboxDriver.from_settings(settings, registry, sandbox_client)
    tracker = EventTracker()
    _app.state.registry = registry
    _app.state.driver = driver
    _app.state.tracker = tracker
    _app.state.controller = LifecycleController(
        registry,
        driver,
        CommentSynchronizer(credentials, github_client, settings.bot_login),
        tracker,
    )
    logger.info("LifecycleController: initialised (bot={})", settings.bot_login)

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Preview orchestrator shutting down (active_events={})", tracker.active_count)

    # 1. Reject new events; the gateway retries them against another replica.
    tracker.begin_shutdown()

    # 2. Let in-flight events finish their readiness wait.
    if tracker.active_count > 0:
        timeout = settings.graceful_shutdown_timeout
        logger.info("Waiting for {} in-flight events to finish (timeout={}s)...", tracker.active_count, timeout)
        drained = await tracker.wait_until_drained(timeout=timeout)
        if not drained:
            # Cancelled provisioning marks its workspace as error.
            cancelled = tracker.cancel_all()
            logger.warning("Cancelled {} events after timeout", cancelled)
            await tracker.wait_until_drained(timeout=5.0)

    await sandbox_client.aclose()
    await github_client.aclose()
    logger.info("HTTP clients: closed")

    if _app.state.db_engine is not None:
        await _app.state.db_engine.dispose()
        logger.info("PostgreSQL: disposed")


app = FastAPI(title="Preview Studio Orchestrator", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from preview_studio.orchestrator.routers.events import router as events_router  # noqa: E402
from preview_studio.orchestrator.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(events_router)
api.include_router(workspaces_router)

app.include_router(api)
