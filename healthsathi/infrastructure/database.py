"""
Local database schema — collections, secondary indexes and the version migration.

Every collection maps to one table: the primary key, one column per declared
index and the full record as a JSON document.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

import structlog
from sqlalchemy import JSON, Column, Float, Index, Integer, MetaData, String, Table, inspect, select
from sqlalchemy.engine import Connection
from sqlalchemy.types import TypeEngine

logger = structlog.get_logger(__name__)

DB_NAME = "HealthSathiDB"
DB_VERSION = 1
STORE_USERS = "users"
STORE_REPORTS = "reports"


@dataclass(frozen=True)
class IndexSpec:
    name: str
    key_path: str
    unique: bool = False
    type_: Type[TypeEngine] = String


@dataclass(frozen=True)
class CollectionSchema:
    name: str
    key_path: str
    indexes: Tuple[IndexSpec, ...] = ()
    # Field set to the current UTC time on every write
    stamp_field: Optional[str] = None

    def index(self, name: str) -> Optional[IndexSpec]:
        for spec in self.indexes:
            if spec.name == name:
                return spec
        return None


COLLECTIONS: Dict[str, CollectionSchema] = {
    STORE_USERS: CollectionSchema(
        name=STORE_USERS,
        key_path="_id",
        indexes=(
            IndexSpec("email", "email", unique=True),
            IndexSpec("role", "role"),  # filtering doctors
        ),
    ),
    STORE_REPORTS: CollectionSchema(
        name=STORE_REPORTS,
        key_path="id",
        indexes=(
            IndexSpec("userId", "userId"),
            IndexSpec("targetDoctorId", "targetDoctorId"),  # doctor routing
            IndexSpec("timestamp", "timestamp", type_=Float),
        ),
        stamp_field="updatedAt",
    ),
}

metadata = MetaData()

store_meta = Table(
    "store_meta",
    metadata,
    Column("name", String, primary_key=True),
    Column("version", Integer, nullable=False),
)


def build_table(schema: CollectionSchema) -> Table:
    columns = [Column("pk", String, primary_key=True)]
    columns += [Column(spec.name, spec.type_(), nullable=True) for spec in schema.indexes]
    columns.append(Column("document", JSON, nullable=False))

    table = Table(schema.name, metadata, *columns)
    for spec in schema.indexes:
        Index(f"ix_{schema.name}_{spec.name}", table.c[spec.name], unique=spec.unique)
    return table


TABLES: Dict[str, Table] = {name: build_table(schema) for name, schema in COLLECTIONS.items()}


def index_value(value: Any) -> Any:
    """Coerce a field value to an index key. Non-scalar values are not indexed."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    return None


def read_version(conn: Connection) -> int:
    if not inspect(conn).has_table(store_meta.name):
        return 0
    version = conn.execute(
        select(store_meta.c.version).where(store_meta.c.name == DB_NAME)
    ).scalar()
    return version or 0


def migrate(conn: Connection) -> int:
    """Bring the schema up to DB_VERSION. Returns the version found on disk."""
    previous = read_version(conn)
    if previous >= DB_VERSION:
        return previous

    if previous < 1:
        metadata.create_all(conn)

    conn.execute(store_meta.delete().where(store_meta.c.name == DB_NAME))
    conn.execute(store_meta.insert().values(name=DB_NAME, version=DB_VERSION))
    logger.info("Database schema migrated", db=DB_NAME, from_version=previous, to_version=DB_VERSION)
    return previous
