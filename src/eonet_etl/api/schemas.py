"""Pydantic response schemas for the HTTP surface."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict


class ProbeStatus(BaseModel):
    status: str
    timestamp: dt.datetime


class RunInfoSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    started_at: dt.datetime
    completed_at: dt.datetime | None = None
    status: str
    events_processed: int
    categories_processed: int
    error_message: str | None = None
