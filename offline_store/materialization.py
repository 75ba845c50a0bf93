"""
Feature materializations.

A materialization is a snapshot of a feature holding only the newest
(entity, value, ts) per entity. Its rows are read in segments by absolute
position, which lets serving-side snapshotting split the work.
"""

import logging

from offline_store import queries
from offline_store.connection import PostgresConnection
from offline_store.iterators import FeatureIterator
from offline_store.resources import MaterializationID

logger = logging.getLogger(__name__)


class Materialization:
    def __init__(self, conn: PostgresConnection, materialization_id: MaterializationID, table: str):
        self._conn = conn
        self._id = materialization_id
        self._table = table

    @property
    def id(self) -> MaterializationID:
        return self._id

    @property
    def table(self) -> str:
        return self._table

    def num_rows(self) -> int:
        row = self._conn.fetch_one(queries.count_rows(self._table))
        return int(row[0])

    def iterate_segment(self, start: int, end: int) -> FeatureIterator:
        """
        Iterate rows at 1-based positions p with start < p <= end.

        Positions are assigned per query, ordered by entity. They are only
        stable while the snapshot is not being rebuilt.
        """
        stream = self._conn.stream(queries.select_segment(self._table), (start, end))
        return FeatureIterator(stream)


def build_materialization(
    conn: PostgresConnection,
    materialization_id: MaterializationID,
    table: str,
    source_table: str,
) -> Materialization:
    """
    Create `table` if needed and fill it with the latest row per entity of
    `source_table`. Rebuilding replaces the previous snapshot rows in the
    same transaction, so an entity never appears twice.
    """
    with conn.transaction() as cur:
        cur.execute(queries.create_materialization_table(table, source_table))
        cur.execute(queries.clear_table(table))
        cur.execute(queries.insert_latest_values(table, source_table))
        logger.info(
            "Materialized %s from %s (%d entities)", table, source_table, max(cur.rowcount, 0)
        )
    return Materialization(conn, materialization_id, table)
