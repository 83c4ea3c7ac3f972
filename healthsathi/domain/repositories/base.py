"""
Base Store Interface.
Defines the standard contract for the indexed local data store.
"""

from typing import Any, Dict, List, Optional, Protocol

Record = Dict[str, Any]


class DocumentStore(Protocol):
    """Interface for atomic single-record operations and index scans."""

    async def open_connection(self) -> None:
        """Open the database, running the schema migration on first use."""
        ...

    async def close(self) -> None:
        """Release the underlying connection pool."""
        ...

    async def get(self, collection: str, id: str) -> Optional[Record]:
        """Get a single record by primary key, or None."""
        ...

    async def add(self, collection: str, record: Record) -> Record:
        """Insert a new record; fails on any key or unique index conflict."""
        ...

    async def put(self, collection: str, record: Record) -> Record:
        """Insert or fully replace a record by primary key."""
        ...

    async def merge_update(self, collection: str, id: str, partial: Record) -> Record:
        """Atomically shallow-merge ``partial`` onto an existing record."""
        ...

    async def get_by_index(self, collection: str, index: str, value: Any) -> Optional[Record]:
        """Get the first record whose indexed field equals ``value``."""
        ...

    async def query_by_index(self, collection: str, index: str, value: Any) -> List[Record]:
        """Get all records whose indexed field equals ``value``."""
        ...

    async def query_all(self, collection: str) -> List[Record]:
        """Get every record in the collection."""
        ...
