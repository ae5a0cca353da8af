"""API routes."""

from shopsync.api.routes.status import router as status_router
from shopsync.api.routes.sync import router as sync_router
from shopsync.api.routes.webhooks import router as webhooks_router

__all__ = ["status_router", "sync_router", "webhooks_router"]
