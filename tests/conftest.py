from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from psycopg2 import sql


def render(query) -> str:
    """Render a psycopg2.sql object without a connection (double-quoted identifiers)."""
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Composed):
        return "".join(render(part) for part in query.seq)
    if isinstance(query, sql.SQL):
        return query.string
    if isinstance(query, sql.Identifier):
        return ".".join('"' + s.replace('"', '""') + '"' for s in query.strings)
    if isinstance(query, sql.Placeholder):
        return "%s"
    if isinstance(query, sql.Literal):
        return repr(query.wrapped)
    raise TypeError(f"cannot render {query!r}")


@pytest.fixture
def render_sql():
    return render


@pytest.fixture
def ts():
    return datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_conn():
    """PostgresConnection stand-in with a transactional cursor."""
    from offline_store.connection import PostgresConnection

    conn = MagicMock(spec=PostgresConnection)
    cur = MagicMock()
    cur.rowcount = 0
    conn.transaction.return_value.__enter__.return_value = cur
    conn.cursor.return_value.__enter__.return_value = cur
    conn.fetch_one.return_value = None
    conn.fetch_all.return_value = []
    return conn


class FakeStream:
    """In-memory stand-in for connection.CursorStream."""

    def __init__(self, rows, fail_at=None, error=None):
        self._rows = list(rows)
        self._fail_at = fail_at
        self._error = error
        self._pos = 0
        self.close_calls = 0

    @property
    def closed(self):
        return self.close_calls > 0

    def fetch(self):
        if self._fail_at is not None and self._pos == self._fail_at:
            raise self._error
        if self._pos >= len(self._rows):
            return None
        row = self._rows[self._pos]
        self._pos += 1
        return row

    def close(self):
        self.close_calls += 1


@pytest.fixture
def fake_stream():
    return FakeStream
