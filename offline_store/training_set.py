"""
Training set assembly.

A training set joins one label table against feature tables so that each
label row carries, per feature, the latest value observed at or before
the label's timestamp. The result is persisted as a table, not a view.
"""

import logging
from typing import List, Sequence

from offline_store import queries
from offline_store.connection import PostgresConnection
from offline_store.iterators import TrainingSetIterator

logger = logging.getLogger(__name__)


def build_training_set(
    conn: PostgresConnection, table: str, label_table: str, feature_tables: Sequence[str]
) -> None:
    """
    Create the training-set table. Fails if the table already exists;
    a training set is never rebuilt in place.
    """
    query = queries.create_training_set(table, label_table, feature_tables)
    try:
        conn.execute(query)
    except Exception as e:
        logger.error("Training set build for %s failed: %s", table, e)
        raise
    logger.info(
        "Built training set %s from label %s and %d feature(s)",
        table,
        label_table,
        len(feature_tables),
    )


def training_set_columns(conn: PostgresConnection, table: str) -> List[str]:
    """Column names in ordinal order; the last one is the label."""
    rows = conn.fetch_all(queries.TABLE_COLUMNS, (table,))
    return [row[0] for row in rows]


def open_training_set(conn: PostgresConnection, table: str) -> TrainingSetIterator:
    columns = training_set_columns(conn, table)
    stream = conn.stream(queries.select_columns(table, columns))
    return TrainingSetIterator(stream, columns)
