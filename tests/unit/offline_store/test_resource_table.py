"""
Unit tests for resource tables.
"""

import numpy as np
import pytest
from psycopg2.extras import Json

from offline_store.errors import InvalidRecordError
from offline_store.resource_table import ResourceTable
from offline_store.resources import ResourceID, ResourceRecord, ResourceType

FEATURE = ResourceID("age", "v1", ResourceType.FEATURE)
TABLE = "featureform_resource_feature_age_v1"


class TestResourceTable:
    def test_create_issues_create_table(self, mock_conn, render_sql):
        table = ResourceTable.create(mock_conn, FEATURE, TABLE)

        stmt = render_sql(mock_conn.execute.call_args.args[0])
        assert stmt.startswith(f'CREATE TABLE "{TABLE}"')
        assert table.name == TABLE
        assert table.id == FEATURE

    def test_write_upserts_encoded_value(self, mock_conn, render_sql, ts):
        table = ResourceTable(mock_conn, FEATURE, TABLE)

        table.write(ResourceRecord(entity="u1", value=np.int16(30), ts=ts))

        query, params = mock_conn.execute.call_args.args
        assert render_sql(query).startswith(f'INSERT INTO "{TABLE}"')
        entity, value, written_ts = params
        assert entity == "u1"
        assert isinstance(value, Json)
        assert value.adapted == {"value": 30, "type": "int16"}
        assert written_ts == ts

    def test_write_rejects_empty_entity(self, mock_conn, ts):
        table = ResourceTable(mock_conn, FEATURE, TABLE)

        with pytest.raises(InvalidRecordError):
            table.write(ResourceRecord(entity="", value=1, ts=ts))

        mock_conn.execute.assert_not_called()

    def test_write_propagates_backend_errors(self, mock_conn, ts):
        mock_conn.execute.side_effect = RuntimeError("pool exhausted")
        table = ResourceTable(mock_conn, FEATURE, TABLE)

        with pytest.raises(RuntimeError):
            table.write(ResourceRecord(entity="u1", value=1, ts=ts))

    def test_record_exists(self, mock_conn, ts):
        table = ResourceTable(mock_conn, FEATURE, TABLE)
        record = ResourceRecord(entity="u1", value=1, ts=ts)

        mock_conn.fetch_one.return_value = ("u1", {"value": 1, "type": "int"}, ts)
        assert table.record_exists(record) is True
        assert mock_conn.fetch_one.call_args.args[1] == ("u1", ts)

        mock_conn.fetch_one.return_value = None
        assert table.record_exists(record) is False
