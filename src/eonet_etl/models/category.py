from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eonet_etl.models.base import Base


class Category(Base):
    __tablename__ = "categories"

    # Feed ids arrive as int, float or numeric string; stored resolved.
    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    link: Mapped[str | None] = mapped_column(sa.String(1000), nullable=True)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    layers: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))

    __table_args__ = (sa.Index("ix_categories_title", "title"),)
