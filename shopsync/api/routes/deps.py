"""Shared route dependencies."""

from fastapi import HTTPException, Request, status

from shopsync.core.engine import Engine


def get_engine(request: Request) -> Engine:
    """The engine attached to the app at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine not initialized",
        )
    return engine
