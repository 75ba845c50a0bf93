"""
Resource tables.

A resource table holds (entity, value, ts) rows for one feature or label,
with one row per (entity, ts). Values are stored as typed JSONB documents.
"""

import logging

from psycopg2.extras import Json

from offline_store import codec, queries
from offline_store.connection import PostgresConnection
from offline_store.metrics import RECORDS_WRITTEN
from offline_store.resources import ResourceID, ResourceRecord

logger = logging.getLogger(__name__)


class ResourceTable:
    """Entity/value/timestamp storage for one Feature or Label."""

    def __init__(self, conn: PostgresConnection, resource_id: ResourceID, name: str):
        self._conn = conn
        self._id = resource_id
        self._name = name

    @property
    def id(self) -> ResourceID:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @classmethod
    def create(cls, conn: PostgresConnection, resource_id: ResourceID, name: str) -> "ResourceTable":
        """Create the backing table. Fails if it already exists."""
        conn.execute(queries.create_resource_table(name))
        logger.info("Created resource table %s", name)
        return cls(conn, resource_id, name)

    def write(self, record: ResourceRecord) -> None:
        """Upsert a record keyed on (entity, ts)."""
        record.check()
        value = Json(codec.to_document(record.value))
        try:
            self._conn.execute(queries.upsert_record(self._name), (record.entity, value, record.ts))
        except Exception as e:
            logger.error("Write to %s failed for entity %s: %s", self._name, record.entity, e)
            raise
        RECORDS_WRITTEN.labels(resource_type=self._id.type.value).inc()

    def record_exists(self, record: ResourceRecord) -> bool:
        """True if a row with the record's (entity, ts) is stored."""
        row = self._conn.fetch_one(queries.select_record(self._name), (record.entity, record.ts))
        return row is not None
