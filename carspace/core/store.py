from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from carspace.db.models import CarImage

from .config import Settings
from .db import Base, create_engine
from .errors import StoreRowError, StoreUnavailable

# dialects with an INSERT ... ON CONFLICT construct
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True, slots=True)
class StoreRow:
    make: str
    model: Optional[str]
    year: Optional[int]
    asset_id: str
    url: str


class CatalogStore(ABC):
    @abstractmethod
    async def ping(self) -> None: ...

    @abstractmethod
    async def ensure_schema(self) -> None: ...

    @abstractmethod
    async def upsert(self, row: StoreRow) -> None: ...

    @abstractmethod
    async def delete(self, asset_id: str) -> int: ...

    @abstractmethod
    async def delete_all(self) -> int: ...

    @abstractmethod
    async def fetch(self, asset_id: str) -> Optional[StoreRow]: ...

    @abstractmethod
    async def dispose(self) -> None: ...


class SQLCatalogStore(CatalogStore):
    """``carimages`` table access over an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.table = CarImage.__table__
        # columns by SQL name; the ORM attribute for "id" is asset_id
        self.columns = {column.name: column for column in self.table.columns}

    async def ping(self) -> None:
        dialect = self.engine.dialect.name
        if dialect not in UPSERT_INSERTS:
            raise StoreUnavailable(f"Unsupported store dialect: {dialect}")
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            url = self.engine.url.render_as_string(hide_password=True)
            raise StoreUnavailable(f"Unable to connect to {url}: {exc}") from exc

    async def ensure_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=[self.table])
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"Failed to create table {self.table.name}: {exc}") from exc

    def _insert(self):
        return UPSERT_INSERTS[self.engine.dialect.name](self.table)

    async def upsert(self, row: StoreRow) -> None:
        columns = self.columns
        stmt = self._insert().values(
            {
                columns["make"]: row.make,
                columns["model"]: row.model,
                columns["year"]: row.year,
                columns["id"]: row.asset_id,
                columns["url"]: row.url,
            }
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[columns["make"], columns["id"]],
            set_={
                columns["model"]: stmt.excluded[columns["model"].key],
                columns["year"]: stmt.excluded[columns["year"].key],
                columns["url"]: stmt.excluded[columns["url"].key],
            },
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreRowError(row.asset_id, str(exc)) from exc

    async def delete(self, asset_id: str) -> int:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(delete(self.table).where(self.columns["id"] == asset_id))
        except (SQLAlchemyError, OSError) as exc:
            raise StoreRowError(asset_id, str(exc)) from exc
        return result.rowcount or 0

    async def delete_all(self) -> int:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(delete(self.table))
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"Failed to clear {self.table.name}: {exc}") from exc
        return result.rowcount or 0

    async def fetch(self, asset_id: str) -> Optional[StoreRow]:
        columns = self.columns
        stmt = select(columns["make"], columns["model"], columns["year"], columns["id"], columns["url"]).where(
            columns["id"] == asset_id
        )
        async with self.engine.connect() as conn:
            found = (await conn.execute(stmt)).first()
        if found is None:
            return None
        return StoreRow(make=found[0], model=found[1], year=found[2], asset_id=found[3], url=found[4])

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_store(settings: Settings) -> CatalogStore:
    return SQLCatalogStore(create_engine(settings))


__all__ = ["StoreRow", "CatalogStore", "SQLCatalogStore", "get_store"]
