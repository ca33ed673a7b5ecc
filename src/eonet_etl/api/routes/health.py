"""Liveness, readiness and Prometheus-style metrics endpoints.

Failures are reported as 503 with a generic message; the detail only goes
to the log.
"""

from __future__ import annotations

import asyncio
import datetime as dt

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from eonet_etl.api.deps import get_pipeline
from eonet_etl.api.schemas import ProbeStatus
from eonet_etl.db.store import RunInfo
from eonet_etl.errors import EtlError
from eonet_etl.worker.orchestrator import Pipeline

logger = structlog.get_logger()

router = APIRouter()

HEALTH_TIMEOUT_SECONDS = 10.0
READY_TIMEOUT_SECONDS = 5.0
METRICS_TIMEOUT_SECONDS = 5.0


async def _probe(pipeline: Pipeline, timeout: float, event: str, detail: str) -> None:
    try:
        async with asyncio.timeout(timeout):
            await pipeline.health_check()
    except (EtlError, TimeoutError) as e:
        logger.error(event, error=str(e) or type(e).__name__)
        raise HTTPException(status_code=503, detail=detail) from e


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC).replace(microsecond=0)


@router.get("/health", response_model=ProbeStatus)
async def health(pipeline: Pipeline = Depends(get_pipeline)) -> ProbeStatus:
    """Feed and database both reachable."""
    await _probe(pipeline, HEALTH_TIMEOUT_SECONDS, "health_check_failed", "Health check failed")
    return ProbeStatus(status="healthy", timestamp=_now())


@router.get("/ready", response_model=ProbeStatus)
async def ready(pipeline: Pipeline = Depends(get_pipeline)) -> ProbeStatus:
    # Same dependencies as /health, with a shorter timeout.
    await _probe(pipeline, READY_TIMEOUT_SECONDS, "readiness_check_failed", "Not ready")
    return ProbeStatus(status="ready", timestamp=_now())


def render_metrics(run: RunInfo | None) -> str:
    """Render the last run in the Prometheus text exposition format."""
    if run is None:
        return "# No ETL runs found\n"
    lines = [
        "# HELP etl_runs_total Total number of ETL runs",
        "# TYPE etl_runs_total counter",
        f'etl_runs_total{{status="{run.status}"}} 1',
        "# HELP etl_events_processed_total Total events processed",
        "# TYPE etl_events_processed_total counter",
        f"etl_events_processed_total {run.events_processed}",
        "# HELP etl_categories_processed_total Total categories processed",
        "# TYPE etl_categories_processed_total counter",
        f"etl_categories_processed_total {run.categories_processed}",
    ]
    return "\n".join(lines) + "\n"


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(pipeline: Pipeline = Depends(get_pipeline)) -> PlainTextResponse:
    try:
        async with asyncio.timeout(METRICS_TIMEOUT_SECONDS):
            run = await pipeline.last_run_info()
    except (EtlError, TimeoutError) as e:
        logger.error("metrics_last_run_failed", error=str(e) or type(e).__name__)
        raise HTTPException(status_code=503, detail="Metrics unavailable") from e
    return PlainTextResponse(render_metrics(run))
