"""FastAPI dependency injection for the shared pipeline."""

from fastapi import Request

from eonet_etl.worker.orchestrator import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """Return the pipeline the app was created with."""
    return request.app.state.pipeline
