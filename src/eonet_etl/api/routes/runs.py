"""Read-only view of the run-tracking table."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException

from eonet_etl.api.deps import get_pipeline
from eonet_etl.api.schemas import RunInfoSchema
from eonet_etl.errors import EtlError
from eonet_etl.worker.orchestrator import Pipeline

logger = structlog.get_logger()

router = APIRouter(prefix="/api/runs", tags=["runs"])


@router.get("/last", response_model=RunInfoSchema | None)
async def last_run(pipeline: Pipeline = Depends(get_pipeline)) -> RunInfoSchema | None:
    """Most recently started run, or ``null`` before the first run."""
    try:
        run = await pipeline.last_run_info()
    except EtlError as e:
        logger.error("last_run_lookup_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Run information unavailable") from e
    if run is None:
        return None
    return RunInfoSchema.model_validate(run)
