"""FastAPI application exposing health, readiness and run metrics."""

from fastapi import FastAPI

from eonet_etl import __version__
from eonet_etl.api.routes.health import router as health_router
from eonet_etl.api.routes.runs import router as runs_router
from eonet_etl.worker.orchestrator import Pipeline


def create_app(pipeline: Pipeline) -> FastAPI:
    """Build the app around an already constructed pipeline."""
    app = FastAPI(title="EONET ETL", version=__version__)
    app.state.pipeline = pipeline

    app.include_router(health_router)
    app.include_router(runs_router)
    return app
