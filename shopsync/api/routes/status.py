"""Health and status endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from shopsync.api.routes.deps import get_engine
from shopsync.core.engine import Engine

router = APIRouter(tags=["status"])


@router.get("/health")
async def health_check(engine: Engine = Depends(get_engine)):
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": engine.settings.app_version,
        "mode": engine.settings.run_mode,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/status")
async def get_status(engine: Engine = Depends(get_engine)):
    """Queue, scheduler and per data object sync state."""
    states = {s.kind: s.to_dict() for s in engine.states.all_states()}
    data_objects = {
        kind.value: {
            "enabled": cfg.enabled,
            "direction": cfg.direction.value,
            "trigger": cfg.trigger.value,
            "state": states.get(kind.value),
        }
        for kind, cfg in engine.data_objects.items()
    }
    return {
        "mode": engine.settings.run_mode,
        "queue": engine.queue.get_status().to_dict(),
        "scheduler": engine.scheduler.get_status(),
        "data_objects": data_objects,
    }
