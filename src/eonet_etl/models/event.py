"""Natural event row -- one per EONET event id, overwritten on every load."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eonet_etl.models.base import Base


class Event(Base):
    """Flattened EONET event.

    Nested collections (category refs, sources, geometry) are stored as JSON
    text blobs rather than child tables; readers decode them on demand.
    """

    __tablename__ = "events"

    # Primary key: stable feed identifier, e.g. "EONET_6512"
    id: Mapped[str] = mapped_column(sa.String(255), primary_key=True)

    title: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    link: Mapped[str | None] = mapped_column(sa.String(1000), nullable=True)

    # JSON-encoded nested collections
    categories_json: Mapped[str] = mapped_column(sa.Text, default="[]")
    sources_json: Mapped[str] = mapped_column(sa.Text, default="[]")
    geometry_json: Mapped[str] = mapped_column(sa.Text, default="[]")

    # NULL while the event is still open
    closed: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        sa.Index("ix_events_closed", "closed"),
        sa.Index("ix_events_created_at", "created_at"),
    )
