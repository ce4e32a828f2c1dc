"""SQL-backed quota counters (SQLite or PostgreSQL via SQLAlchemy).

Rows live in an `api_usage` table keyed by `provider:day:endpoint`. Each call
is a single `INSERT ... ON CONFLICT DO UPDATE SET call_count = call_count + 1`,
so concurrent writers never read-modify-write the counter themselves.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine

from roadwise.quota.base import QuotaStore, usage_id
from utils.logging_utils import get_tagged_logger, mask_secret_url

logger = get_tagged_logger(__name__, tag="quota/sql_quota_store")

metadata = MetaData()

api_usage = Table(
    "api_usage",
    metadata,
    Column("id", String, primary_key=True),
    Column("date", Date, nullable=False),
    Column("provider", String, nullable=False),
    Column("endpoint", String, nullable=False),
    Column("call_count", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index("api_usage_date_provider_idx", "date", "provider"),
)


def _dialect_insert(engine: Engine):
    """Return the dialect-specific insert() that supports ON CONFLICT."""
    name = engine.dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    raise ValueError(f"Unsupported quota database dialect '{name}'")


class SqlQuotaStore(QuotaStore):
    """Durable counters in a relational database."""

    def __init__(self, engine: Engine, *, create_tables: bool = True) -> None:
        self.engine = engine
        self._insert = _dialect_insert(engine)
        if create_tables:
            metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SqlQuotaStore":
        """Create an engine from a URL and build the store."""
        logger.info("Using SQL quota store", extra={"db_url": mask_secret_url(database_url)})
        engine = create_engine(database_url, future=True)
        return cls(engine, **kwargs)

    def increment(self, provider: str, day: date, endpoint: str) -> int:
        row_id = usage_id(provider, day, endpoint)
        stmt = self._insert(api_usage).values(
            id=row_id,
            date=day,
            provider=provider,
            endpoint=endpoint,
            call_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[api_usage.c.id],
            set_={"call_count": api_usage.c.call_count + 1},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
            count = conn.execute(
                select(api_usage.c.call_count).where(api_usage.c.id == row_id)
            ).scalar_one()
        return int(count)

    def decrement(self, provider: str, day: date, endpoint: str) -> int:
        row_id = usage_id(provider, day, endpoint)
        stmt = (
            update(api_usage)
            .where(api_usage.c.id == row_id, api_usage.c.call_count > 0)
            .values(call_count=api_usage.c.call_count - 1)
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
            count = conn.execute(
                select(api_usage.c.call_count).where(api_usage.c.id == row_id)
            ).scalar_one_or_none()
        return int(count or 0)

    def total(self, provider: str, day: date) -> int:
        stmt = select(func.coalesce(func.sum(api_usage.c.call_count), 0)).where(
            api_usage.c.date == day,
            api_usage.c.provider == provider,
        )
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def clear(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(api_usage))
