"""Run-tracking model: one row per fetch/normalize/load pass."""

from __future__ import annotations

import enum
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eonet_etl.models.base import Base


class RunStatus(enum.StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EtlRun(Base):
    """Durable outcome of a pipeline run.

    Rows are inserted with status ``running`` and receive exactly one
    terminal update (``completed`` or ``failed``).  Ids are generated
    client-side, see ``eonet_etl.db.store.RunIdGenerator``.
    """

    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=False)
    started_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))
    completed_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, default=RunStatus.RUNNING.value)
    events_processed: Mapped[int] = mapped_column(sa.Integer, default=0)
    categories_processed: Mapped[int] = mapped_column(sa.Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (sa.Index("ix_runs_started_at", "started_at"),)
