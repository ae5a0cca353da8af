"""ShopSync - webhook ingress, status API and scheduler host."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shopsync.api.routes import status_router, sync_router, webhooks_router
from shopsync.core.config import get_settings, validate_remote_credentials
from shopsync.core.database import init_db, reset_db
from shopsync.core.engine import Engine, build_engine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()
logging.getLogger("shopsync").setLevel(settings.effective_log_level)


async def start_engine(engine: Engine) -> None:
    """Prepare storage, register webhooks, start the scheduler and kick off syncs."""
    if engine.settings.is_demo:
        reset_db()
    else:
        init_db()
    logger.info("Database initialized")

    removed = engine.webhook_events.cleanup(engine.settings.webhook_retention_days)
    if removed:
        logger.info(f"Cleaned up {removed} old webhook events")

    await register_webhooks(engine)
    await engine.start()
    engine.scheduler.trigger_all_syncs()


async def register_webhooks(engine: Engine) -> None:
    """Make sure Shopify delivers every configured topic to this service."""
    if not engine.settings.webhook_base_url or engine.shopify is None:
        logger.info("WEBHOOK_BASE_URL not set, skipping webhook registration")
        return
    topics = sorted({
        topic
        for cfg in engine.data_objects.values()
        if cfg.enabled
        for topic in cfg.webhook_topics
    })
    try:
        await engine.shopify.sync_webhooks(topics, engine.settings.webhook_base_url)
    except Exception as e:
        logger.error(f"Webhook registration failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name} in {settings.run_mode} mode...")
    if not settings.is_demo:
        validate_remote_credentials(settings)

    engine = build_engine(settings)
    app.state.engine = engine
    await start_engine(engine)
    logger.info("Sync engine started")

    yield

    logger.info("Shutting down...")
    await engine.shutdown()


def create_app(engine: Engine | None = None) -> FastAPI:
    """Build the ASGI app.

    With an explicit ``engine`` the app serves it as-is and does not
    manage its lifecycle.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Keeps a Shopify store in sync with a Google Sheets system-of-record.",
        lifespan=lifespan if engine is None else None,
    )
    if engine is not None:
        app.state.engine = engine

    app.include_router(status_router)
    app.include_router(webhooks_router)
    app.include_router(sync_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shopsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
