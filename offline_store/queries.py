"""
Statement builders for the offline store.

Each builder returns a psycopg2.sql object. Identifiers are quoted through
naming.sanitize and values are left as %s placeholders, so the shape of a
statement can be asserted without a database.
"""

from typing import Sequence

from psycopg2 import sql

from offline_store.naming import sanitize

TABLE_EXISTS = sql.SQL(
    "SELECT 1 FROM information_schema.tables "
    "WHERE table_schema = current_schema() AND table_name = %s"
)

TABLE_COLUMNS = sql.SQL(
    "SELECT column_name FROM information_schema.columns "
    "WHERE table_schema = current_schema() AND table_name = %s "
    "ORDER BY ordinal_position"
)

LABEL_COLUMN = "label"


def create_resource_table(table: str) -> sql.Composed:
    return sql.SQL(
        "CREATE TABLE {} (entity VARCHAR, value JSONB, ts TIMESTAMPTZ, UNIQUE (entity, ts))"
    ).format(sanitize(table))


def upsert_record(table: str) -> sql.Composed:
    """Insert a record, overwriting the value of an existing (entity, ts) row."""
    return sql.SQL(
        "INSERT INTO {} (entity, value, ts) VALUES (%s, %s, %s) "
        "ON CONFLICT (entity, ts) DO UPDATE SET value = EXCLUDED.value"
    ).format(sanitize(table))


def select_record(table: str) -> sql.Composed:
    return sql.SQL("SELECT entity, value, ts FROM {} WHERE entity = %s AND ts = %s").format(
        sanitize(table)
    )


def create_materialization_table(table: str, source: str) -> sql.Composed:
    return sql.SQL(
        "CREATE TABLE IF NOT EXISTS {} AS (SELECT entity, value, ts FROM {} WHERE 1=2)"
    ).format(sanitize(table), sanitize(source))


def clear_table(table: str) -> sql.Composed:
    return sql.SQL("DELETE FROM {}").format(sanitize(table))


def insert_latest_values(table: str, source: str) -> sql.Composed:
    """Copy the newest row per entity from `source` into `table`."""
    return sql.SQL(
        "INSERT INTO {} SELECT entity, value, ts FROM "
        "(SELECT entity, value, ts, row_number() OVER (PARTITION BY entity ORDER BY ts DESC) AS rn "
        "FROM {}) t WHERE rn = 1"
    ).format(sanitize(table), sanitize(source))


def count_rows(table: str) -> sql.Composed:
    return sql.SQL("SELECT COUNT(*) FROM {}").format(sanitize(table))


def select_segment(table: str) -> sql.Composed:
    """Rows whose 1-based position p satisfies start < p <= end."""
    return sql.SQL(
        "SELECT entity, value, ts FROM "
        "(SELECT entity, value, ts, row_number() OVER (ORDER BY entity) AS row_number FROM {}) t "
        "WHERE row_number > %s AND row_number <= %s ORDER BY row_number"
    ).format(sanitize(table))


def create_training_set(table: str, label: str, features: Sequence[str]) -> sql.Composed:
    """
    Point-in-time join of a label table against feature tables.

    Each feature contributes its latest value at or before the label's
    timestamp, in a column named after the feature's table. A LEFT JOIN
    keeps label rows that have no matching feature observation.
    """
    columns = []
    joins = []
    for i, feature in enumerate(features):
        alias = sql.Identifier(f"t{i}")
        columns.append(sql.SQL("{}.{}").format(alias, sanitize(feature)))
        joins.append(
            sql.SQL(
                " LEFT JOIN LATERAL (SELECT f.entity, f.value AS {column}, f.ts FROM {table} f "
                "WHERE f.entity = l.entity AND f.ts <= l.ts ORDER BY f.ts DESC LIMIT 1) {alias} "
                "ON {alias}.entity = l.entity"
            ).format(column=sanitize(feature), table=sanitize(feature), alias=alias)
        )
    return sql.SQL(
        "CREATE TABLE {table} AS (SELECT {columns}, l.value AS {label_column} "
        "FROM (SELECT entity, value, ts FROM {label}) l{joins})"
    ).format(
        table=sanitize(table),
        columns=sql.SQL(", ").join(columns),
        label_column=sanitize(LABEL_COLUMN),
        label=sanitize(label),
        joins=sql.Composed(joins),
    )


def select_columns(table: str, columns: Sequence[str]) -> sql.Composed:
    return sql.SQL("SELECT {} FROM {}").format(
        sql.SQL(", ").join(sanitize(c) for c in columns), sanitize(table)
    )
