"""
SQLAlchemy (asyncio + aiosqlite) implementation of the DocumentStore.
"""

import asyncio
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import Table, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from healthsathi.core.exceptions import DuplicateKey, NotFound, StoreUnavailable, TransactionFailed
from healthsathi.core.operation_logging import logged_operation
from healthsathi.domain.repositories.base import DocumentStore, Record
from healthsathi.infrastructure.database import (
    COLLECTIONS,
    DB_NAME,
    DB_VERSION,
    TABLES,
    CollectionSchema,
    index_value,
    migrate,
)

logger = structlog.get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conflicting_field(exc: IntegrityError, schema: CollectionSchema) -> str:
    """Pull the column name out of 'UNIQUE constraint failed: users.email'."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    _, _, columns = message.partition("failed:")
    column = columns.strip().split(",")[0].rpartition(".")[2].strip()
    if not column or column == "pk":
        return schema.key_path
    return column


class SQLAlchemyDocumentStore(DocumentStore):
    """
    Indexed document store over SQLite.

    The handle is opened lazily on first use (or explicitly with
    ``open_connection``) and released with ``close``. Writers on the same
    collection are serialized by a per-collection lock; each operation runs in
    its own database transaction.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._open_lock = asyncio.Lock()
        self._write_locks = {name: asyncio.Lock() for name in COLLECTIONS}

    async def __aenter__(self) -> "SQLAlchemyDocumentStore":
        await self.open_connection()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open_connection(self) -> None:
        async with self._open_lock:
            if self._engine is not None:
                return

            engine = None
            try:
                engine = create_async_engine(self.url, echo=self._echo)
                async with engine.begin() as conn:
                    previous = await conn.run_sync(migrate)
            except (SQLAlchemyError, OSError) as e:
                if engine is not None:
                    await engine.dispose()
                logger.error("Failed to open database", db=DB_NAME, error=str(e))
                raise StoreUnavailable(details={"db": DB_NAME, "reason": str(e)}) from e

            self._engine = engine
            logger.info("Database opened", db=DB_NAME, version=DB_VERSION, found_version=previous)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        logger.info("Database closed", db=DB_NAME)

    def _schema(self, collection: str) -> Tuple[CollectionSchema, Table]:
        schema = COLLECTIONS.get(collection)
        if schema is None:
            raise TransactionFailed(
                f"Unknown collection '{collection}'", details={"collection": collection}
            )
        return schema, TABLES[collection]

    @asynccontextmanager
    async def _transaction(
        self, collection: str, operation: str, write: bool = False
    ) -> AsyncIterator[Tuple[AsyncConnection, CollectionSchema, Table]]:
        schema, table = self._schema(collection)
        await self.open_connection()

        lock = self._write_locks[collection] if write else nullcontext()
        async with logged_operation(operation, collection=collection):
            async with lock:
                try:
                    async with self._engine.begin() as conn:
                        yield conn, schema, table
                except IntegrityError as e:
                    field = _conflicting_field(e, schema)
                    raise DuplicateKey(
                        f"Duplicate value for '{field}' in {collection}",
                        details={"collection": collection, "field": field},
                    ) from e
                except SQLAlchemyError as e:
                    raise TransactionFailed(
                        str(e), details={"collection": collection, "operation": operation}
                    ) from e

    def _prepare(self, schema: CollectionSchema, record: Record) -> Tuple[Record, Dict[str, Any]]:
        """Copy and stamp the record, and compute its row values."""
        key = record.get(schema.key_path)
        if not isinstance(key, str) or not key:
            raise TransactionFailed(
                f"Record has no valid '{schema.key_path}' key",
                details={"collection": schema.name},
            )

        document = dict(record)
        if schema.stamp_field:
            document[schema.stamp_field] = _now_iso()

        values = {"pk": key, "document": document}
        for spec in schema.indexes:
            raw = document.get(spec.key_path)
            values[spec.name] = index_value(raw)
            if spec.unique and raw is not None and values[spec.name] is None:
                raise TransactionFailed(
                    f"Value of unique field '{spec.key_path}' is not a valid key",
                    details={"collection": schema.name, "field": spec.key_path},
                )
        return document, values

    def _index_column(self, schema: CollectionSchema, table: Table, index: str):
        if schema.index(index) is None:
            raise TransactionFailed(
                f"Unknown index '{index}' on {schema.name}",
                details={"collection": schema.name, "index": index},
            )
        return table.c[index]

    @staticmethod
    async def _read(conn: AsyncConnection, table: Table, id: str) -> Optional[Record]:
        result = await conn.execute(select(table.c.document).where(table.c.pk == id))
        document = result.scalar_one_or_none()
        return dict(document) if document is not None else None

    async def get(self, collection: str, id: str) -> Optional[Record]:
        async with self._transaction(collection, "get") as (conn, _, table):
            return await self._read(conn, table, id)

    async def add(self, collection: str, record: Record) -> Record:
        async with self._transaction(collection, "add", write=True) as (conn, schema, table):
            document, values = self._prepare(schema, record)
            await conn.execute(insert(table).values(**values))
        return document

    async def put(self, collection: str, record: Record) -> Record:
        async with self._transaction(collection, "put", write=True) as (conn, schema, table):
            document, values = self._prepare(schema, record)
            exists = await conn.scalar(select(table.c.pk).where(table.c.pk == values["pk"]))
            if exists is None:
                await conn.execute(insert(table).values(**values))
            else:
                await conn.execute(update(table).where(table.c.pk == values["pk"]).values(**values))
        return document

    async def merge_update(self, collection: str, id: str, partial: Record) -> Record:
        async with self._transaction(collection, "merge_update", write=True) as (conn, schema, table):
            existing = await self._read(conn, table, id)
            if existing is None:
                raise NotFound(
                    f"Record '{id}' not found in {collection}",
                    details={"collection": collection, "id": id},
                )

            # Shallow merge; the primary key never changes
            merged = {**existing, **partial, schema.key_path: id}
            document, values = self._prepare(schema, merged)
            await conn.execute(update(table).where(table.c.pk == id).values(**values))
        return document

    async def get_by_index(self, collection: str, index: str, value: Any) -> Optional[Record]:
        async with self._transaction(collection, "get_by_index") as (conn, schema, table):
            column = self._index_column(schema, table, index)
            key = index_value(value)
            # Unindexable values never match; records missing the field are not indexed
            if key is None:
                return None
            result = await conn.execute(
                select(table.c.document)
                .where(column == key)
                .order_by(table.c.pk)
                .limit(1)
            )
            document = result.scalar_one_or_none()
            return dict(document) if document is not None else None

    async def query_by_index(self, collection: str, index: str, value: Any) -> List[Record]:
        async with self._transaction(collection, "query_by_index") as (conn, schema, table):
            column = self._index_column(schema, table, index)
            key = index_value(value)
            if key is None:
                return []
            result = await conn.execute(
                select(table.c.document).where(column == key).order_by(table.c.pk)
            )
            return [dict(document) for document in result.scalars().all()]

    async def query_all(self, collection: str) -> List[Record]:
        async with self._transaction(collection, "query_all") as (conn, _, table):
            result = await conn.execute(select(table.c.document).order_by(table.c.pk))
            return [dict(document) for document in result.scalars().all()]
