"""Durable cache of logo lookups, one row per Docker Hub namespace"""

from typing import Any

import structlog
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hubicons.model import CacheRecord, CacheStoreError

log = structlog.get_logger()

metadata = MetaData()

icons = Table(
    "icons",
    metadata,
    # sqlite only autoincrements a plain INTEGER primary key
    Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("namespace", String(1000), unique=True, nullable=False),
    Column("url", Text, nullable=True),
    Column("content", LargeBinary, nullable=True),
    Column("content_type", Text, nullable=True),
    Column("updated_at", DateTime, server_default=func.now(), nullable=False),
)

UPSERT_DIALECTS: dict[str, Any] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CacheStore:
    def __init__(self, url: str, echo: bool = False) -> None:
        self.url: str = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self.log: Any = structlog.get_logger().bind(component="cache_store")
        insert = UPSERT_DIALECTS.get(self.engine.dialect.name)
        if insert is None:
            raise CacheStoreError(f"Unsupported database dialect {self.engine.dialect.name}, need an upsert capable one")
        self._insert = insert

    async def initialize(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            self.log.error("Unable to create icons table: %s", e)
            raise CacheStoreError("Unable to initialize cache store") from e
        self.log.info("Cache store ready", dialect=self.engine.dialect.name)

    async def close(self) -> None:
        await self.engine.dispose()
        self.log.debug("Cache store connections closed")

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except SQLAlchemyError as e:
            raise CacheStoreError("Cache store unreachable") from e

    async def lookup(self, namespace: str) -> CacheRecord | None:
        query = (
            select(icons.c.namespace, icons.c.url, icons.c.content, icons.c.content_type, icons.c.updated_at)
            .where(icons.c.namespace == namespace)
            .limit(1)
        )
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(query)).first()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache lookup failed for {namespace}") from e
        if row is None:
            return None
        return CacheRecord(
            namespace=row.namespace,
            url=row.url,
            content=row.content,
            content_type=row.content_type,
            updated_at=row.updated_at,
        )

    async def upsert_positive(self, namespace: str, url: str, content: bytes, content_type: str) -> None:
        await self._upsert(namespace, url=url, content=content, content_type=content_type)
        self.log.debug("Stored logo", namespace=namespace, url=url, size=len(content))

    async def upsert_negative(self, namespace: str) -> None:
        # clear every column, a record is either fully positive or fully negative
        await self._upsert(namespace, url=None, content=None, content_type=None)
        self.log.debug("Stored absent logo", namespace=namespace)

    async def forget(self, namespace: str) -> bool:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(delete(icons).where(icons.c.namespace == namespace))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache delete failed for {namespace}") from e
        return bool(result.rowcount)

    async def _upsert(self, namespace: str, url: str | None, content: bytes | None, content_type: str | None) -> None:
        stmt = self._insert(icons).values(namespace=namespace, url=url, content=content, content_type=content_type)
        stmt = stmt.on_conflict_do_update(
            index_elements=[icons.c.namespace],
            set_={
                "url": stmt.excluded.url,
                "content": stmt.excluded.content,
                "content_type": stmt.excluded.content_type,
                "updated_at": func.now(),
            },
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Cache write failed for {namespace}") from e
