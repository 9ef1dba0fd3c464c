"""
Connection & DbManager (db/connection.py, db/manager.py)

Tests transactions and savepoints, SQL listeners, DB events, the SQL
log, schema introspection, reconnects and connection resolution.
"""

import sqlite3

import pytest

from quarry import DbManager
from quarry.db.backends.sqlite import SQLiteAdapter
from quarry.db.connection import field_type_of
from quarry.db.connectors.sqlite import SqliteConnection
from quarry.faults import ConfigFault, DbFault, QueryFault

from tests.conftest import QueryCounter, seed_users, sqlite_config


class FlakyAdapter(SQLiteAdapter):
    """Fails the next ``failures`` statements with a lost-link error."""

    failures = 0

    def execute(self, sql, params=None):
        if FlakyAdapter.failures > 0:
            FlakyAdapter.failures -= 1
            raise sqlite3.OperationalError("Lost connection to MySQL server during query")
        return super().execute(sql, params)


class FlakyConnection(SqliteConnection):
    adapter_class = FlakyAdapter


@pytest.fixture
def flaky():
    FlakyAdapter.failures = 0
    yield FlakyAdapter
    FlakyAdapter.failures = 0


# ============================================================================
# Transactions
# ============================================================================

class TestTransactions:

    def test_commit(self, db):
        def work(connection):
            connection.table("role").insert({"name": "admin"})
            return "done"

        assert db.transaction(work) == "done"
        assert db.table("role").count() == 1
        assert db.connect().trans_times == 0

    def test_rollback_on_error(self, db):
        def work(connection):
            connection.table("role").insert({"name": "admin"})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            db.transaction(work)
        assert db.table("role").count() == 0
        assert db.connect().trans_times == 0

    def test_nested_savepoint_rollback(self, db):
        connection = db.connect()
        connection.start_trans()
        connection.table("role").insert({"name": "outer"})

        connection.start_trans()
        assert connection.trans_times == 2
        connection.table("role").insert({"name": "inner"})
        connection.rollback()
        assert connection.trans_times == 1

        connection.commit()
        assert connection.trans_times == 0
        assert db.table("role").column("name") == ["outer"]

    def test_nested_transaction_calls(self, db):
        def inner(connection):
            connection.table("role").insert({"name": "inner"})
            raise ValueError("inner failed")

        def outer(connection):
            connection.table("role").insert({"name": "outer"})
            with pytest.raises(ValueError):
                connection.transaction(inner)
            return connection.trans_times

        assert db.transaction(outer) == 1
        assert db.table("role").column("name") == ["outer"]

    def test_commit_and_rollback_without_transaction(self, db):
        connection = db.connect()
        connection.commit()
        connection.rollback()
        assert connection.trans_times == 0

    def test_query_level_transaction(self, db):
        query = db.table("role")
        query.start_trans()
        db.table("role").insert({"name": "a"})
        query.rollback()
        assert db.table("role").count() == 0

    def test_xa_not_supported(self, db):
        with pytest.raises(DbFault) as exc:
            db.connect().transaction_xa(lambda connection: None)
        assert exc.value.message == "not support xa transaction"

    def test_batch_query(self, db):
        assert db.table("role").batch_query([
            "INSERT INTO role (name) VALUES ('a')",
            "INSERT INTO role (name) VALUES ('b')",
        ]) is True
        assert db.table("role").count() == 2

    def test_batch_query_rolls_back(self, db):
        with pytest.raises(QueryFault):
            db.table("role").batch_query([
                "INSERT INTO role (name) VALUES ('a')",
                "INSERT INTO missing_table (name) VALUES ('b')",
            ])
        assert db.table("role").count() == 0

    def test_insert_all_in_chunks(self, db, counter):
        rows = [{"name": f"r{i}"} for i in range(5)]
        assert db.table("role").insert_all(rows, limit=2) == 5
        inserts = [sql for sql in counter.statements if sql.startswith("INSERT")]
        assert len(inserts) == 3
        assert db.connect().trans_times == 0


# ============================================================================
# Listeners / events / log
# ============================================================================

class TestListeners:

    def test_listener_receives_real_sql(self, db, counter):
        seed_users(db)
        counter.reset()
        db.table("user").where("id", 2).find()
        assert counter.statements == ["SELECT * FROM `user` WHERE `id` = 2 LIMIT 1"]

    def test_listener_arguments(self, db):
        calls = []
        db.listen(lambda sql, runtime, master: calls.append((sql, runtime, master)))
        db.query("SELECT 1 AS one")
        sql, runtime, master = calls[-1]
        assert sql == "SELECT 1 AS one"
        assert runtime >= 0
        assert master is None

    def test_connect_is_reported(self):
        db = DbManager(sqlite_config())
        seen = []
        db.listen(lambda sql, runtime, master: seen.append(sql))
        db.query("SELECT 1")
        assert seen[0].startswith("CONNECT:[ UseTime:")
        assert seen[0].endswith("sqlite::memory:")
        db.close()

    def test_trigger_sql_disabled(self):
        db = DbManager(sqlite_config(trigger_sql=False))
        counter = QueryCounter()
        db.listen(counter)
        db.query("SELECT 1")
        assert counter.statements == []
        db.close()

    def test_sql_log_buffer(self, db):
        db.get_db_log(True)
        db.query("SELECT 2 AS two")
        lines = db.get_db_log()["sql"]
        assert lines[-1].startswith("SELECT 2 AS two [ RunTime:")
        assert db.get_db_log(True)
        assert db.get_db_log() == {}

    def test_query_times(self, db):
        db.clear_query_times()
        db.query("SELECT 1")
        db.query("SELECT 2")
        assert db.get_query_times() == 2

    def test_before_select_cancels(self, db):
        seed_users(db)
        db.event("before_select", lambda query: False)
        assert db.table("user").select() == []

    def test_before_find_cancels(self, db):
        seed_users(db)
        db.event("before_find", lambda query: False)
        assert db.table("user").where("id", 1).find() is None

    def test_after_write_events(self, db):
        seen = []
        db.event("after_insert", lambda query: seen.append(("insert", query.get_options("data"))))
        db.event("after_update", lambda query: seen.append(("update", None)))
        db.event("after_delete", lambda query: seen.append(("delete", None)))

        db.table("role").insert({"name": "a"})
        db.table("role").where("id", 1).update({"name": "b"})
        db.table("role").where("id", 1).delete()

        assert seen[0] == ("insert", {"name": "a", "id": 1})
        assert [kind for kind, _ in seen] == ["insert", "update", "delete"]

    def test_no_event_without_affected_rows(self, db):
        seen = []
        db.event("after_update", lambda query: seen.append(query))
        db.table("role").where("id", 99).update({"name": "b"})
        assert seen == []


# ============================================================================
# Raw statements / errors
# ============================================================================

class TestRawStatements:

    def test_query_positional(self, db):
        seed_users(db)
        assert db.query("SELECT name FROM user WHERE id = ?", [1]) == [{"name": "user1"}]

    def test_query_named(self, db):
        seed_users(db)
        rows = db.query("SELECT id FROM user WHERE status = :status ORDER BY id", {"status": 1})
        assert rows == [{"id": 1}, {"id": 3}]

    def test_execute_returns_row_count(self, db):
        seed_users(db)
        assert db.execute("UPDATE user SET status = ?", [5]) == 3

    def test_query_fault(self, db):
        with pytest.raises(QueryFault) as exc:
            db.query("SELECT * FROM missing_table")
        assert exc.value.code == "QUERY_FAILED"
        assert "missing_table" in exc.value.sql

    def test_last_sql(self, db):
        seed_users(db)
        query = db.table("user").where("name", "user2")
        query.select()
        assert query.get_last_sql() == "SELECT * FROM `user` WHERE `name` = 'user2'"
        assert query.get_num_rows() == 1


# ============================================================================
# Reconnect
# ============================================================================

class TestReconnect:

    def _manager(self, **options):
        return DbManager({
            "default": "flaky",
            "connections": {"flaky": {"type": FlakyConnection, "database": ":memory:", **options}},
        })

    def test_is_break(self):
        connection = SqliteConnection({"break_reconnect": True})
        assert connection.is_break(Exception("LOST CONNECTION to server"))
        assert not connection.is_break(Exception("syntax error"))
        assert not SqliteConnection().is_break(Exception("Lost connection"))

    def test_custom_break_match(self):
        db = self._manager(break_reconnect=True, break_match_str=["link flapped"])
        connection = db.connect()
        connection.query("SELECT 1")
        assert connection.is_break(Exception("the link flapped"))
        db.close()

    def test_reconnects_and_retries(self, flaky):
        db = self._manager(break_reconnect=True)
        db.query("SELECT 1")
        flaky.failures = 1
        assert db.query("SELECT 1 AS one") == [{"one": 1}]
        db.close()

    def test_reconnect_cap(self, flaky):
        """Four retries in a row; the fifth failure is raised."""
        db = self._manager(break_reconnect=True)
        db.query("SELECT 1")
        flaky.failures = 5
        with pytest.raises(QueryFault):
            db.query("SELECT 1 AS one")
        assert flaky.failures == 0
        assert db.query("SELECT 1 AS one") == [{"one": 1}]
        db.close()

    def test_four_failures_recover(self, flaky):
        db = self._manager(break_reconnect=True)
        db.query("SELECT 1")
        flaky.failures = 4
        assert db.query("SELECT 1 AS one") == [{"one": 1}]
        assert flaky.failures == 0
        db.close()

    def test_close_after_write(self, db):
        db.table("role").insert({"name": "admin"})
        db.close()
        assert db.connect()._link is None

    def test_statement_close_on_closed_link(self):
        connection = SqliteConnection({"database": ":memory:"})
        statement = connection.get_statement("SELECT 1")
        connection._link.close()
        statement.close()
        connection.close()

    def test_no_reconnect_when_disabled(self, flaky):
        db = self._manager()
        db.query("SELECT 1")
        flaky.failures = 1
        with pytest.raises(QueryFault):
            db.query("SELECT 1 AS one")
        db.close()

    def test_break_inside_transaction_drops_state(self, flaky):
        db = self._manager(break_reconnect=True)
        connection = db.connect()
        connection.start_trans()
        flaky.failures = 1
        with pytest.raises(QueryFault):
            connection.query("SELECT 1")
        assert connection.trans_times == 0
        db.close()


# ============================================================================
# Schema introspection
# ============================================================================

class TestSchemaInfo:

    def test_field_type_of(self):
        assert field_type_of("INTEGER") == "int"
        assert field_type_of("bigint(20) unsigned") == "int"
        assert field_type_of("decimal(10,2)") == "float"
        assert field_type_of("REAL") == "float"
        assert field_type_of("boolean") == "bool"
        assert field_type_of("datetime") == "datetime"
        assert field_type_of("timestamp with time zone") == "timestamp"
        assert field_type_of("date") == "date"
        assert field_type_of("enum('a','b')") == "string"
        assert field_type_of("varchar(32)") == "string"
        assert field_type_of("") == "string"

    def test_table_info(self, db):
        connection = db.connect()
        assert connection.get_pk("user") == "id"
        assert connection.get_auto_inc("user") == "id"
        assert connection.get_table_fields("comment") == ["id", "post_id", "body"]

    def test_field_types(self, db):
        types = db.connect().get_fields_type("user")
        assert types["id"] == "int"
        assert types["name"] == "string"
        assert types["score"] == "float"
        assert types["create_time"] == "datetime"
        assert db.connect().get_fields_type("user", "status") == "int"

    def test_bind_types(self, db):
        bind = db.connect().get_fields_bind("user")
        assert bind["id"] == "int"
        assert bind["name"] == "str"
        assert bind["score"] == "float"

    def test_table_without_pk(self, db):
        assert db.connect().get_pk("user_role") is None
        assert db.connect().get_auto_inc("user_role") is None

    def test_tables(self, db):
        assert db.connect().get_tables() == [
            "comment", "country", "image", "post", "profile", "role", "tag", "taggable", "user", "user_role",
        ]

    def test_schema_is_memoized(self, db):
        connection = db.connect()
        statements = []
        db.listen(lambda sql, runtime, master: statements.append(sql))
        connection.get_table_fields("role")
        connection.get_table_fields("role")
        assert len([sql for sql in statements if sql.startswith("PRAGMA")]) == 1

    def test_insert_id_type(self, db):
        new_id = db.table("role").insert_get_id({"name": "a"})
        assert new_id == 1
        assert isinstance(new_id, int)


# ============================================================================
# Manager
# ============================================================================

class TestDbManager:

    def test_connection_is_cached(self, db):
        assert db.connect() is db.connect()
        assert db.connect("sqlite") is db.connect()

    def test_force_new_connection(self, db):
        first = db.connect()
        assert db.connect(force=True) is not first

    def test_undefined_connection(self, db):
        with pytest.raises(ConfigFault) as exc:
            db.connect("reports")
        assert exc.value.code == "DB_CONNECTION_UNDEFINED"
        assert exc.value.message == "undefined db config: reports"

    def test_unsupported_type(self):
        db = DbManager({"default": "x", "connections": {"x": {"type": "oracle"}}})
        with pytest.raises(ConfigFault) as exc:
            db.connect()
        assert exc.value.code == "DB_TYPE_UNSUPPORTED"

    def test_dotted_type(self):
        db = DbManager({
            "default": "x",
            "connections": {"x": {"type": "quarry.db.connectors.sqlite:SqliteConnection", "database": ":memory:"}},
        })
        assert isinstance(db.connect(), SqliteConnection)
        db.close()

    def test_inherited_options(self):
        config = sqlite_config()
        config["fields_strict"] = False
        db = DbManager(config)
        assert db.connect().get_config("fields_strict") is False

    def test_set_cache_reaches_connections(self, db):
        from quarry.cache import MemoryStore

        store = MemoryStore()
        connection = db.connect()
        db.set_cache(store)
        assert connection.get_cache() is store
        assert db.get_cache() is store

    def test_trigger_return(self, db):
        assert db.trigger("before_select", None) is None
        db.event("before_select", lambda query: None)
        assert db.trigger("before_select", None) is None
        db.event("before_select", lambda query: False)
        assert db.trigger("before_select", None) is False

    def test_raw(self, db):
        raw = db.raw("NOW()")
        assert str(raw) == "NOW()"

    def test_repr(self, db):
        db.connect()
        assert repr(db) == "<DbManager default='sqlite' connections=['sqlite']>"
        assert repr(db.connect()) == "<SqliteConnection sqlite::memory: trans=0>"
