"""Tests for the Database facade over fake and sqlite-backed pools."""

from unittest.mock import MagicMock, patch

import pytest

from ormspine.core.cancellation import CancellationToken
from ormspine.core.errors import (
    NoRowsError,
    NonRetryableBackendError,
    OperationCancelled,
    UnregisteredModelError,
)
from ormspine.core.settings import OrmSettings
from ormspine.db import Database
from ormspine.query.statements import insert_statement
from ormspine.transactions import ConstantBackoff, IsolationLevel, TransactionManager
from tests._support.fakes import FakeCursor, FakeDriverError, deadlock
from tests._support.records import AIModel, NotADataclass, SampleModel, Website
from tests._support.sqlite import SqlitePool, create_sample_table

AI_SELECT = 'SELECT "ai_model"."uuid", "ai_model"."key", "ai_model"."name" FROM "ai_model"'


@pytest.fixture
def db(fake_pool, registry):
    manager = TransactionManager(fake_pool, registry=registry, backoff=ConstantBackoff(0.0))
    return Database(fake_pool, registry, manager=manager)


class TestWrites:
    def test_insert_returning(self, db, fake_conn, fake_pool):
        fake_conn.respond("INSERT", FakeCursor(["uuid"], [("u1",)]))
        values = {"key": "gpt", "name": "GPT"}
        assert db.insert("ai_model", values, returning="uuid") == "u1"
        assert values["uuid"] == "u1"
        assert fake_conn.executed == [
            (
                'INSERT INTO "ai_model" ("uuid", "key", "name") '
                'VALUES (DEFAULT, $1, $2) RETURNING "ai_model".uuid',
                ["gpt", "GPT"],
            )
        ]
        assert fake_pool.outstanding == 0

    def test_insert_without_returning(self, db, fake_conn):
        assert db.insert("ai_model", {"key": "gpt"}) is None
        assert "RETURNING" not in fake_conn.statements[0]

    def test_insert_record_writes_back(self, db, fake_conn):
        fake_conn.respond("INSERT", FakeCursor(["uuid"], [("u2",)]))
        record = AIModel(key="llama")
        db.insert_record(record, returning="uuid")
        assert record.uuid == "u2"

    def test_update_record(self, db, fake_conn):
        fake_conn.respond("UPDATE", FakeCursor(["uuid"], [("u1",)]))
        assert db.update_record(AIModel(uuid="u1", name="Renamed"), key="uuid") == "u1"
        sql, args = fake_conn.executed[0]
        assert sql == (
            'UPDATE "ai_model" SET key = $1, name = $2 '
            'WHERE "ai_model"."uuid" = $3 RETURNING "ai_model".uuid'
        )
        assert args == [None, "Renamed", "u1"]

    def test_update_record_where(self, db, fake_conn):
        fake_conn.respond("UPDATE", FakeCursor(rowcount=2))
        record = AIModel(key="gpt", name=None)
        assert db.update_record_where(record, '"ai_model".key = $1', ["gpt-old"]) == 2
        sql, args = fake_conn.executed[0]
        assert sql == 'UPDATE "ai_model" SET key = $1, name = $2 WHERE "ai_model".key = $3'
        assert args == ["gpt", None, "gpt-old"]

    def test_delete(self, db, fake_conn):
        fake_conn.respond("DELETE", FakeCursor(rowcount=4))
        assert db.delete("ai_model", '"ai_model".key = $1', ["old"]) == 4

    def test_unregistered_record(self, db):
        with pytest.raises(UnregisteredModelError):
            db.insert_record(NotADataclass())


class TestReads:
    def test_select_one(self, db, fake_conn):
        fake_conn.respond("SELECT", FakeCursor(["uuid", "key"], [("u1", "gpt")]))
        model = db.select_one(AIModel, AI_SELECT + ' WHERE "ai_model".key = $1', ["gpt"])
        assert model == AIModel(uuid="u1", key="gpt")

    def test_select_one_not_found(self, db, fake_conn, fake_pool):
        fake_conn.respond("SELECT", FakeCursor(["uuid"], []))
        with pytest.raises(NoRowsError):
            db.select_one(AIModel, AI_SELECT)
        assert fake_pool.outstanding == 0

    def test_select_many_with_link(self, db, fake_conn):
        fake_conn.respond(
            "SELECT",
            FakeCursor(["uuid", "r.name"], [("w1", "prod"), ("w2", None)]),
        )
        sites = db.select_many(Website, "SELECT ...")
        assert sites[0].realm.name == "prod"
        assert sites[1].realm is None

    def test_scalar(self, db, fake_conn):
        fake_conn.respond("COUNT", FakeCursor(["count"], [(5,)]))
        assert db.scalar("SELECT COUNT(*) FROM ai_model") == 5

    def test_backend_error_classified_and_released(self, db, fake_conn, fake_pool):
        fake_conn.fail_on("SELECT", FakeDriverError('relation "nope" does not exist', "42P01"))
        with pytest.raises(NonRetryableBackendError):
            db.select_many(AIModel, "SELECT * FROM nope")
        assert fake_pool.outstanding == 0

    def test_acquire_timeout_clipped_to_deadline(self, fake_pool, registry):
        db = Database(fake_pool, registry, acquire_timeout=30.0)
        db.execute("SELECT 1", token=CancellationToken(timeout=5.0))
        assert fake_pool.timeouts[0] <= 5.0

    def test_acquire_timeout_without_token(self, db, fake_pool):
        db.acquire_timeout = 2.5
        db.execute("SELECT 1")
        assert fake_pool.timeouts == [2.5]

    def test_cancelled_token(self, db, fake_pool):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            db.execute("SELECT 1", token=token)
        assert fake_pool.acquired == 0


class TestFilter:
    def test_base_query(self, db):
        assert db.base_query("ai_model") == AI_SELECT

    def test_filter(self, db, fake_conn):
        fake_conn.respond("SELECT", FakeCursor(["uuid", "key", "name"], [("u1", "gpt", "GPT")]))
        models = db.filter(AIModel, {"Key[$like]": "%g%"}, {"Key": "ASC"}, per_page=10, page=2)
        assert models == [AIModel(uuid="u1", key="gpt", name="GPT")]
        sql, args = fake_conn.executed[0]
        assert sql == (
            AI_SELECT + ' WHERE "ai_model".key LIKE $1 ORDER BY "ai_model".key ASC LIMIT 10 OFFSET 10'
        )
        assert args == ["%g%"]

    def test_count(self, db, fake_conn):
        fake_conn.respond("COUNT", FakeCursor(["count"], [(3,)]))
        assert db.count(AIModel, {"key[€eq]": "GPT"}) == 3
        sql, args = fake_conn.executed[0]
        assert sql == (
            f'SELECT COUNT(*) FROM ({AI_SELECT} WHERE LOWER("ai_model".key) = $1) AS count_subquery'
        )
        assert args == ["gpt"]

    def test_unregistered_type(self, db):
        with pytest.raises(UnregisteredModelError):
            db.filter(NotADataclass)


class TestTransactions:
    def test_run_with_retry(self, db, fake_conn):
        fake_conn.fail_on("UPDATE", deadlock())
        calls = []

        def body(tx):
            calls.append(1)
            return tx.execute("UPDATE t SET a = 1")

        assert db.run_with_retry(body) == 1
        assert len(calls) == 2

    def test_transaction_context(self, db, fake_conn):
        with db.transaction() as tx:
            tx.insert("ai_model", {"key": "k"})
        assert fake_conn.statements[0].startswith("BEGIN")
        assert fake_conn.statements[-1] == "COMMIT"

    def test_read_only(self, db, fake_conn):
        db.run_read_only(lambda tx: None)
        assert "READ ONLY" in fake_conn.statements[0]


class TestLifecycle:
    def test_open_close_delegate(self, registry):
        pool = MagicMock()
        with Database(pool, registry) as db:
            assert db.ping()
        pool.open.assert_called_once_with()
        pool.close.assert_called_once_with()

    @patch("ormspine.db.database.configure_logging_from_settings")
    def test_from_settings(self, mock_configure, registry):
        settings = OrmSettings(tx_isolation="serializable", tx_max_retries=4, pool_timeout=2.0)
        with patch("ormspine.db.database.PostgresPool") as pool_cls:
            db = Database.from_settings(registry, settings)
        mock_configure.assert_called_once_with(settings)
        pool_cls.from_settings.assert_called_once_with(settings)
        assert db.pool is pool_cls.from_settings.return_value
        assert db.manager.options.isolation is IsolationLevel.SERIALIZABLE
        assert db.manager.options.max_retries == 4
        assert db.acquire_timeout == 2.0

    @patch("ormspine.db.database.configure_logging_from_settings")
    def test_from_settings_without_logging(self, mock_configure, registry):
        with patch("ormspine.db.database.PostgresPool"):
            Database.from_settings(registry, OrmSettings(), configure_logs=False)
        mock_configure.assert_not_called()


@pytest.fixture
def sqlite_db(sqlite_conn, registry):
    create_sample_table(sqlite_conn)
    return Database(SqlitePool(sqlite_conn), registry)


class TestSqliteRoundTrip:
    """Generated statements executed against sqlite."""

    def by_uuid(self, db, uuid):
        return db.select_one(SampleModel, db.base_query("t") + ' WHERE "t".uuid = $1', [uuid])

    def test_insert_then_select_reproduces_fields(self, sqlite_db):
        record = SampleModel(uuid="u1", key="gpt", name="GPT")
        sqlite_db.insert_record(record)
        assert self.by_uuid(sqlite_db, "u1") == record

    def test_insert_statement_then_select(self, sqlite_db, registry):
        values = {"uuid": "u2", "key": "llama", "name": "Llama"}
        statement = insert_statement(registry, "t", values)
        sqlite_db.execute(statement.sql, statement.args)
        assert self.by_uuid(sqlite_db, "u2") == SampleModel(**values)

    def test_omitted_field_reads_back_as_null(self, sqlite_db):
        sqlite_db.insert_record(SampleModel(uuid="u3", key="k"))
        assert self.by_uuid(sqlite_db, "u3") == SampleModel(uuid="u3", key="k", name=None)

    def test_update_clears_column(self, sqlite_db):
        sqlite_db.insert_record(SampleModel(uuid="u4", key="k", name="named"))
        changed = sqlite_db.update_record_where(
            SampleModel(key="k2", name=None), '"t".uuid = $1', ["u4"]
        )
        assert changed == 1
        assert self.by_uuid(sqlite_db, "u4") == SampleModel(uuid="u4", key="k2", name=None)

    def test_filter_and_count_agree(self, sqlite_db):
        for i in range(12):
            sqlite_db.insert_record(SampleModel(uuid=f"u{i:02d}", key=f"k{i % 4}", name=f"n{i}"))
        filters = {"key[$ne]": "k0"}
        page = sqlite_db.filter(SampleModel, filters, {"uuid": "ASC"}, per_page=5, page=2)
        assert [r.uuid for r in page] == ["u07", "u09", "u10", "u11"]
        assert sqlite_db.count(SampleModel, filters) == 9
