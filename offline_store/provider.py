"""
PostgreSQL offline store provider.

Entry point used by the provider registry: offline_store_factory turns a
serialized PostgresConfig into a connected PostgresOfflineStore.
"""

import logging
from typing import Callable, Dict, Optional

from psycopg2.errors import DuplicateTable

from offline_store import naming, queries
from offline_store.config import OfflineStoreSettings, PostgresConfig, configure_logging
from offline_store.connection import PostgresConnection
from offline_store.errors import (
    InvalidConfigError,
    MaterializationNotFoundError,
    TableAlreadyExistsError,
    TableNotFoundError,
    TrainingSetNotFoundError,
)
from offline_store.iterators import TrainingSetIterator
from offline_store.materialization import Materialization, build_materialization
from offline_store.metrics import track_operation
from offline_store.resource_table import ResourceTable
from offline_store.resources import MaterializationID, ResourceID, ResourceType, TrainingSetDef
from offline_store.training_set import build_training_set, open_training_set

logger = logging.getLogger(__name__)

POSTGRES_OFFLINE = "POSTGRES_OFFLINE"


class PostgresOfflineStore:
    """
    Offline store backed by PostgreSQL.

    Usage:
        store = offline_store_factory(serialized_config)
        table = store.create_resource_table(feature_id)
        table.write(ResourceRecord(entity="u1", value=30, ts=ts))
        mat = store.create_materialization(feature_id)
    """

    def __init__(self, conn: PostgresConnection, config: PostgresConfig):
        self._conn = conn
        self._config = config

    @property
    def config(self) -> PostgresConfig:
        return self._config

    def serialize_config(self) -> bytes:
        return self._config.serialize()

    def as_offline_store(self) -> "PostgresOfflineStore":
        return self

    def close(self) -> None:
        self._conn.close()

    def is_healthy(self) -> bool:
        return self._conn.is_healthy()

    def _table_registered(self, table: str) -> bool:
        return self._conn.fetch_one(queries.TABLE_EXISTS, (table,)) is not None

    def table_exists(self, resource_id: ResourceID) -> bool:
        return self._table_registered(naming.table_name(resource_id))

    def create_resource_table(self, resource_id: ResourceID) -> ResourceTable:
        """Create a table for a feature or label. Fails if one already exists."""
        resource_id.check(ResourceType.FEATURE, ResourceType.LABEL)
        with track_operation("create_resource_table"):
            if self.table_exists(resource_id):
                raise TableAlreadyExistsError(resource_id.name, resource_id.variant)
            name = naming.resource_table_name(resource_id)
            try:
                return ResourceTable.create(self._conn, resource_id, name)
            except DuplicateTable as e:
                # Lost a race with a concurrent create.
                raise TableAlreadyExistsError(resource_id.name, resource_id.variant) from e

    def get_resource_table(self, resource_id: ResourceID) -> ResourceTable:
        resource_id.check(ResourceType.FEATURE, ResourceType.LABEL)
        if not self.table_exists(resource_id):
            raise TableNotFoundError(resource_id.name, resource_id.variant)
        return ResourceTable(self._conn, resource_id, naming.resource_table_name(resource_id))

    def create_materialization(self, resource_id: ResourceID) -> Materialization:
        """Snapshot the latest value per entity of a feature. Safe to re-run."""
        resource_id.check(ResourceType.FEATURE)
        with track_operation("create_materialization"):
            source = self.get_resource_table(resource_id)
            materialization_id = MaterializationID(resource_id.name)
            return build_materialization(
                self._conn,
                materialization_id,
                naming.materialization_table_name(materialization_id),
                source.name,
            )

    def get_materialization(self, materialization_id: MaterializationID) -> Materialization:
        table = naming.materialization_table_name(materialization_id)
        if not self._table_registered(table):
            raise MaterializationNotFoundError(materialization_id)
        return Materialization(self._conn, materialization_id, table)

    def create_training_set(self, definition: TrainingSetDef) -> None:
        """
        Build a training set table. Unlike materializations this is not
        idempotent: an existing training set is an error.
        """
        definition.check()
        with track_operation("create_training_set"):
            if self.table_exists(definition.id):
                raise TableAlreadyExistsError(definition.id.name, definition.id.variant)
            label = self.get_resource_table(definition.label)
            features = [self.get_resource_table(f).name for f in definition.features]
            try:
                build_training_set(
                    self._conn,
                    naming.training_set_table_name(definition.id),
                    label.name,
                    features,
                )
            except DuplicateTable as e:
                raise TableAlreadyExistsError(definition.id.name, definition.id.variant) from e

    def get_training_set(self, resource_id: ResourceID) -> TrainingSetIterator:
        resource_id.check(ResourceType.TRAINING_SET)
        if not self.table_exists(resource_id):
            raise TrainingSetNotFoundError(resource_id)
        return open_training_set(self._conn, naming.training_set_table_name(resource_id))


def new_postgres_offline_store(
    config: PostgresConfig, settings: Optional[OfflineStoreSettings] = None
) -> PostgresOfflineStore:
    """Open a pooled connection and wrap it in a store."""
    settings = settings or OfflineStoreSettings()
    configure_logging(settings.log_level)
    conn = PostgresConnection(config, settings)
    conn.connect()
    return PostgresOfflineStore(conn, config)


def offline_store_factory(
    config: bytes, settings: Optional[OfflineStoreSettings] = None
) -> PostgresOfflineStore:
    """Registry factory. Raises InvalidConfigError before any connection is attempted."""
    try:
        pg = PostgresConfig.deserialize(config)
    except InvalidConfigError:
        logger.error("Rejected postgres offline store config")
        raise
    return new_postgres_offline_store(pg, settings)


PROVIDER_FACTORIES: Dict[str, Callable[[bytes], PostgresOfflineStore]] = {
    POSTGRES_OFFLINE: offline_store_factory,
}
