from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, PrimaryKeyConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column

from carspace.core.db import Base


class CarImage(Base):
    """Relational projection of a catalog entry.

    Identifiers are lower-case to match the unquoted ``CarImages`` DDL used by
    existing PostgreSQL deployments.
    """

    __tablename__ = "carimages"
    __table_args__ = (PrimaryKeyConstraint("make", "id", name="carimages_pkey"),)

    make: Mapped[str] = mapped_column("make", Text, nullable=False)
    model: Mapped[Optional[str]] = mapped_column("model", Text, nullable=True)
    year: Mapped[Optional[int]] = mapped_column("year", Integer, nullable=True)
    asset_id: Mapped[str] = mapped_column("id", Text, unique=True, nullable=False)
    url: Mapped[str] = mapped_column("url", Text, nullable=False)


__all__ = ["CarImage"]
