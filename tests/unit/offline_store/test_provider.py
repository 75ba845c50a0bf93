"""
Unit tests for the PostgreSQL offline store provider.
The connection handle is mocked; catalog lookups are driven per table name.
"""

import json
from unittest.mock import patch

import psycopg2.errors
import pytest

from offline_store import queries
from offline_store.config import OfflineStoreSettings
from offline_store.errors import (
    InvalidConfigError,
    InvalidResourceIDError,
    InvalidTrainingSetDefError,
    MaterializationNotFoundError,
    TableAlreadyExistsError,
    TableNotFoundError,
    TrainingSetNotFoundError,
)
from offline_store.iterators import TrainingSetIterator
from offline_store.provider import (
    POSTGRES_OFFLINE,
    PROVIDER_FACTORIES,
    PostgresOfflineStore,
    offline_store_factory,
)
from offline_store.resources import ResourceID, ResourceType, TrainingSetDef

AGE = ResourceID("age", "v1", ResourceType.FEATURE)
CITY = ResourceID("city", "v1", ResourceType.FEATURE)
CHURNED = ResourceID("churned", "v1", ResourceType.LABEL)
CHURN_SET = ResourceID("churn", "v1", ResourceType.TRAINING_SET)

AGE_TABLE = "featureform_resource_feature_age_v1"
CITY_TABLE = "featureform_resource_feature_city_v1"
CHURNED_TABLE = "featureform_resource_label_churned_v1"
CHURN_SET_TABLE = "featureform_trainingset_churn_v1"

CONFIG = json.dumps(
    {"Host": "pg", "Port": "5432", "Username": "u", "Password": "p", "Database": "d"}
).encode()


def with_tables(mock_conn, *tables):
    """Make catalog lookups report exactly `tables` as existing."""

    def fetch_one(query, params=None):
        if query is queries.TABLE_EXISTS:
            return (1,) if params[0] in tables else None
        return None

    mock_conn.fetch_one.side_effect = fetch_one


@pytest.fixture
def store(mock_conn):
    from offline_store.config import PostgresConfig

    return PostgresOfflineStore(mock_conn, PostgresConfig.deserialize(CONFIG))


class TestResourceTables:
    def test_create(self, store, mock_conn, render_sql):
        with_tables(mock_conn)

        table = store.create_resource_table(AGE)

        assert table.name == AGE_TABLE
        stmt = render_sql(mock_conn.execute.call_args.args[0])
        assert stmt.startswith(f'CREATE TABLE "{AGE_TABLE}"')

    def test_create_existing_fails_without_touching_table(self, store, mock_conn):
        with_tables(mock_conn, AGE_TABLE)

        with pytest.raises(TableAlreadyExistsError) as exc:
            store.create_resource_table(AGE)

        assert (exc.value.name, exc.value.variant) == ("age", "v1")
        mock_conn.execute.assert_not_called()

    def test_concurrent_create_reports_already_exists(self, store, mock_conn):
        with_tables(mock_conn)
        mock_conn.execute.side_effect = psycopg2.errors.DuplicateTable("exists")

        with pytest.raises(TableAlreadyExistsError):
            store.create_resource_table(AGE)

    def test_create_rejects_training_set_id(self, store, mock_conn):
        with pytest.raises(InvalidResourceIDError):
            store.create_resource_table(CHURN_SET)

    def test_get_missing(self, store, mock_conn):
        with_tables(mock_conn)

        with pytest.raises(TableNotFoundError):
            store.get_resource_table(CHURNED)

    def test_get_existing(self, store, mock_conn):
        with_tables(mock_conn, CHURNED_TABLE)

        assert store.get_resource_table(CHURNED).name == CHURNED_TABLE

    def test_table_exists_uses_catalog(self, store, mock_conn):
        with_tables(mock_conn, CHURN_SET_TABLE)

        assert store.table_exists(CHURN_SET) is True
        assert store.table_exists(AGE) is False


class TestMaterializations:
    def test_create(self, store, mock_conn, render_sql):
        with_tables(mock_conn, AGE_TABLE)
        cur = mock_conn.transaction.return_value.__enter__.return_value

        mat = store.create_materialization(AGE)

        assert mat.id == "age"
        assert mat.table == "featureform_materialization_age"
        statements = [render_sql(c.args[0]) for c in cur.execute.call_args_list]
        assert any(f'FROM "{AGE_TABLE}"' in s for s in statements)

    def test_only_features(self, store, mock_conn):
        with pytest.raises(InvalidResourceIDError):
            store.create_materialization(CHURNED)

    def test_missing_source(self, store, mock_conn):
        with_tables(mock_conn)

        with pytest.raises(TableNotFoundError):
            store.create_materialization(AGE)

    def test_get(self, store, mock_conn):
        with_tables(mock_conn, "featureform_materialization_age")

        assert store.get_materialization("age").table == "featureform_materialization_age"

    def test_get_missing(self, store, mock_conn):
        with_tables(mock_conn)

        with pytest.raises(MaterializationNotFoundError) as exc:
            store.get_materialization("age")
        assert exc.value.id == "age"


class TestTrainingSets:
    DEF = TrainingSetDef(id=CHURN_SET, label=CHURNED, features=[AGE, CITY])

    def test_create(self, store, mock_conn, render_sql):
        with_tables(mock_conn, AGE_TABLE, CITY_TABLE, CHURNED_TABLE)

        store.create_training_set(self.DEF)

        stmt = render_sql(mock_conn.execute.call_args.args[0])
        assert stmt.startswith(
            f'CREATE TABLE "{CHURN_SET_TABLE}" AS (SELECT "t0"."{AGE_TABLE}", "t1"."{CITY_TABLE}", '
            'l.value AS "label"'
        )
        assert f'FROM (SELECT entity, value, ts FROM "{CHURNED_TABLE}") l' in stmt

    def test_existing_training_set_is_not_rebuilt(self, store, mock_conn):
        with_tables(mock_conn, AGE_TABLE, CITY_TABLE, CHURNED_TABLE, CHURN_SET_TABLE)

        with pytest.raises(TableAlreadyExistsError):
            store.create_training_set(self.DEF)
        mock_conn.execute.assert_not_called()

    def test_missing_label(self, store, mock_conn):
        with_tables(mock_conn, AGE_TABLE, CITY_TABLE)

        with pytest.raises(TableNotFoundError) as exc:
            store.create_training_set(self.DEF)
        assert exc.value.name == "churned"

    def test_missing_feature(self, store, mock_conn):
        with_tables(mock_conn, AGE_TABLE, CHURNED_TABLE)

        with pytest.raises(TableNotFoundError) as exc:
            store.create_training_set(self.DEF)
        assert exc.value.name == "city"

    def test_invalid_definition(self, store, mock_conn):
        with pytest.raises(InvalidTrainingSetDefError):
            store.create_training_set(TrainingSetDef(id=CHURN_SET, label=CHURNED, features=[]))
        mock_conn.fetch_one.assert_not_called()

    def test_get(self, store, mock_conn, render_sql):
        with_tables(mock_conn, CHURN_SET_TABLE)
        mock_conn.fetch_all.return_value = [(AGE_TABLE,), (CITY_TABLE,), ("label",)]

        it = store.get_training_set(CHURN_SET)

        assert isinstance(it, TrainingSetIterator)
        assert it.columns == [AGE_TABLE, CITY_TABLE]
        assert mock_conn.fetch_all.call_args.args[1] == (CHURN_SET_TABLE,)
        assert render_sql(mock_conn.stream.call_args.args[0]) == (
            f'SELECT "{AGE_TABLE}", "{CITY_TABLE}", "label" FROM "{CHURN_SET_TABLE}"'
        )

    def test_get_missing(self, store, mock_conn):
        with_tables(mock_conn)

        with pytest.raises(TrainingSetNotFoundError) as exc:
            store.get_training_set(CHURN_SET)
        assert exc.value.id == CHURN_SET

    def test_get_requires_training_set_id(self, store, mock_conn):
        with pytest.raises(InvalidResourceIDError):
            store.get_training_set(AGE)


class TestFactory:
    def test_registered(self):
        assert PROVIDER_FACTORIES[POSTGRES_OFFLINE] is offline_store_factory

    @patch("offline_store.provider.PostgresConnection")
    def test_builds_connected_store(self, conn_cls):
        store = offline_store_factory(CONFIG)

        conn_cls.return_value.connect.assert_called_once()
        assert isinstance(store, PostgresOfflineStore)
        assert store.as_offline_store() is store
        assert json.loads(store.serialize_config()) == json.loads(CONFIG)

    @patch("offline_store.provider.configure_logging")
    @patch("offline_store.provider.PostgresConnection")
    def test_applies_configured_log_level(self, conn_cls, configure_logging):
        settings = OfflineStoreSettings(_env_file=None, log_level="DEBUG")

        offline_store_factory(CONFIG, settings)

        configure_logging.assert_called_once_with("DEBUG")
        conn_cls.assert_called_once()
        assert conn_cls.call_args.args[1] is settings

    @patch("offline_store.provider.PostgresConnection")
    def test_invalid_config_never_connects(self, conn_cls):
        with pytest.raises(InvalidConfigError):
            offline_store_factory(b'{"Host": "pg"}')

        conn_cls.assert_not_called()

    def test_close_and_health_delegate(self, store, mock_conn):
        mock_conn.is_healthy.return_value = True

        assert store.is_healthy() is True
        store.close()
        mock_conn.close.assert_called_once()
