"""Sync job management API routes."""

from apscheduler.triggers.cron import CronTrigger
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from shopsync.api.routes.deps import get_engine
from shopsync.core.data_objects import DataObjectKind, SyncTrigger
from shopsync.core.engine import Engine

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


class ScheduleUpdate(BaseModel):
    """New cron expressions; a missing mode keeps its current one."""

    model_config = {"extra": "forbid"}

    production: str | None = None
    demo: str | None = None


@router.post("/{kind}")
async def trigger_sync(kind: DataObjectKind, engine: Engine = Depends(get_engine)):
    """Queue a high priority sync for one data object."""
    handle = engine.scheduler.trigger_immediate_sync(kind)
    if handle is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{kind.value} is disabled",
        )
    return {"status": "triggered", "kind": kind.value, "job_id": handle.id}


@router.post("")
async def trigger_all(engine: Engine = Depends(get_engine)):
    """Queue a sync for every cron-triggered data object."""
    handles = engine.scheduler.trigger_all_syncs()
    return {"status": "triggered", "job_ids": [h.id for h in handles]}


@router.put("/{kind}/schedule")
async def update_schedule(
    kind: DataObjectKind, request_data: ScheduleUpdate, engine: Engine = Depends(get_engine)
):
    """Change the cron schedule of one data object while running."""
    config = engine.data_objects[kind]
    if config.trigger != SyncTrigger.CRON or config.schedule is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{kind.value} is not cron triggered",
        )
    changes = request_data.model_dump(exclude_none=True)
    for mode, expression in changes.items():
        try:
            CronTrigger.from_crontab(expression)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid {mode} cron expression {expression!r}: {e}",
            ) from e

    schedule = config.schedule.model_copy(update=changes)
    engine.data_objects[kind] = config.model_copy(update={"schedule": schedule})
    scheduled = engine.scheduler.update_schedule(kind)
    return {"status": "updated", "kind": kind.value, "schedule": schedule.model_dump(), "scheduled": scheduled}


@router.delete("/queue/{job_id}")
async def cancel_job(job_id: str, engine: Engine = Depends(get_engine)):
    """Cancel a queued job."""
    if not engine.queue.cancel(job_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No queued job {job_id}",
        )
    return {"status": "cancelled", "job_id": job_id}


@router.get("/history")
async def get_sync_history(
    kind: DataObjectKind | None = None,
    limit: int = Query(default=20, ge=1, le=200),
    engine: Engine = Depends(get_engine),
):
    """Recent job log entries."""
    return {"jobs": engine.job_logs.recent(kind, limit=limit)}


@router.get("/states")
async def get_sync_states(engine: Engine = Depends(get_engine)):
    return {"states": [s.to_dict() for s in engine.states.all_states()]}
