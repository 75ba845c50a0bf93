"""
Offline Store module.

PostgreSQL-backed storage for feature and label streams, latest-value
materializations and point-in-time-correct training sets.
"""

from offline_store.config import OfflineStoreSettings, PostgresConfig
from offline_store.iterators import FeatureIterator, TrainingSetIterator
from offline_store.materialization import Materialization
from offline_store.provider import PostgresOfflineStore, offline_store_factory
from offline_store.resource_table import ResourceTable
from offline_store.resources import (
    MaterializationID,
    ResourceID,
    ResourceRecord,
    ResourceType,
    TrainingSetDef,
)

__all__ = [
    "OfflineStoreSettings",
    "PostgresConfig",
    "FeatureIterator",
    "TrainingSetIterator",
    "Materialization",
    "PostgresOfflineStore",
    "offline_store_factory",
    "ResourceTable",
    "MaterializationID",
    "ResourceID",
    "ResourceRecord",
    "ResourceType",
    "TrainingSetDef",
]
