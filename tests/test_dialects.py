"""
Dialects & distributed links (db/builder/mysql.py, db/builder/pgsql.py,
db/connection.py)

MySQL and PostgreSQL statements are rendered through ``fetch_sql()``
with schema introspection mocked out, so no server is needed. Host
selection for ``deploy`` setups is checked against a mocked driver.
"""

import sqlite3
from unittest import mock

import pytest

from quarry import DbManager
from quarry.db.backends.sqlite import SQLiteAdapter
from quarry.db.connectors import MysqlConnection, PgsqlConnection, SqliteConnection
from quarry.faults import DbFault


USER_FIELDS = {
    "id": {"name": "id", "type": "int(11)", "primary": True, "autoinc": True},
    "name": {"name": "name", "type": "varchar(32)"},
    "status": {"name": "status", "type": "int(11)"},
    "tags": {"name": "tags", "type": "json"},
}


def manager(type):
    return DbManager({
        "default": type,
        "connections": {type: {"type": type, "database": "app"}},
    })


@pytest.fixture
def mysql():
    with mock.patch.object(MysqlConnection, "get_fields", return_value=USER_FIELDS):
        yield manager("mysql")


@pytest.fixture
def pgsql():
    with mock.patch.object(PgsqlConnection, "get_fields", return_value=USER_FIELDS):
        yield manager("pgsql")


# ============================================================================
# MySQL
# ============================================================================

class TestMysql:

    def test_select(self, mysql):
        sql = mysql.table("user").where("id", 1).fetch_sql().find()
        assert sql == "SELECT * FROM `user` WHERE `id` = 1 LIMIT 1"

    def test_insert_uses_set_form(self, mysql):
        sql = mysql.table("user").fetch_sql().insert({"name": "a", "status": 1})
        assert sql == "INSERT INTO `user` SET `name` = 'a' , `status` = 1"

    def test_insert_ignore(self, mysql):
        sql = mysql.table("user").extra("IGNORE").fetch_sql().insert({"name": "a"})
        assert sql == "INSERT IGNORE INTO `user` SET `name` = 'a'"

    def test_duplicate(self, mysql):
        sql = mysql.table("user").duplicate(["name"]).fetch_sql().insert({"id": 1, "name": "a"})
        assert sql == (
            "INSERT INTO `user` SET `id` = 1 , `name` = 'a' "
            "ON DUPLICATE KEY UPDATE `name` = VALUES(`name`)"
        )

    def test_force_and_partition(self, mysql):
        assert mysql.table("user").force("idx_name").fetch_sql().select() == \
            "SELECT * FROM `user` FORCE INDEX ( idx_name )"
        assert mysql.table("user").partition("p1,p2").fetch_sql().select() == \
            "SELECT * FROM `user` PARTITION (p1 , p2)"

    def test_rand_and_lock(self, mysql):
        assert mysql.table("user").order_rand().fetch_sql().select() == \
            "SELECT * FROM `user` ORDER BY rand()"
        assert mysql.table("user").where("id", 1).lock(True).fetch_sql().select() == \
            "SELECT * FROM `user` WHERE `id` = 1 FOR UPDATE"

    def test_unquoted_json_path(self, mysql):
        sql = mysql.table("user").where("tags->>color", "red").fetch_sql().select()
        assert sql == "SELECT * FROM `user` WHERE `tags`->>'$.color' = 'red'"

    def test_invalid_xa_id(self, mysql):
        with pytest.raises(DbFault) as exc_info:
            mysql.connect().start_trans_xa("x'; DROP")
        assert "invalid xa transaction id" in exc_info.value.message


# ============================================================================
# PostgreSQL
# ============================================================================

class TestPgsql:

    def test_double_quoted_identifiers(self, pgsql):
        sql = pgsql.table("user").where("id", 1).fetch_sql().find()
        assert sql == 'SELECT * FROM "user" WHERE "id" = 1 LIMIT 1'

    def test_limit_offset(self, pgsql):
        assert pgsql.table("user").limit(20, 10).fetch_sql().select() == \
            'SELECT * FROM "user" LIMIT 10 OFFSET 20'

    def test_insert(self, pgsql):
        sql = pgsql.table("user").fetch_sql().insert({"name": "a", "status": 1})
        assert sql == 'INSERT INTO "user" ("name","status") VALUES (\'a\',1)'

    def test_json_operators(self, pgsql):
        sql = pgsql.table("user").where("tags->>color", "red").fetch_sql().select()
        assert sql == 'SELECT * FROM "user" WHERE "tags"->>\'color\' = \'red\''

    def test_random_order(self, pgsql):
        assert pgsql.table("user").order_rand().fetch_sql().select() == \
            'SELECT * FROM "user" ORDER BY RANDOM()'


# ============================================================================
# Distributed (deploy) links
# ============================================================================

def deploy_connection(**options):
    return SqliteConnection({
        "type": "sqlite",
        "deploy": 1,
        "hostname": "db1,db2,db3",
        "database": ":memory:",
        "trigger_sql": False,
        **options,
    })


def connected_hosts(connect):
    return [call.args[1]["hostname"] for call in connect.call_args_list]


class TestDistributed:

    def test_read_write_split(self):
        connection = deploy_connection(rw_separate=True, slave_no=2)
        with mock.patch.object(SQLiteAdapter, "connect", autospec=True) as connect:
            connection.init_connect(True)
            connection.init_connect(False)
        assert connected_hosts(connect) == ["db1", "db3"]

    def test_links_are_reused(self):
        connection = deploy_connection(rw_separate=True, slave_no=1)
        with mock.patch.object(SQLiteAdapter, "connect", autospec=True) as connect:
            connection.init_connect(False)
            connection.init_connect(False)
            connection.init_connect(True)
            connection.init_connect(True)
        assert connected_hosts(connect) == ["db2", "db1"]

    def test_random_slave(self):
        connection = deploy_connection(rw_separate=True)
        with mock.patch.object(SQLiteAdapter, "connect", autospec=True) as connect, \
                mock.patch("random.randint", side_effect=lambda low, high: high):
            connection.init_connect(False)
        assert connected_hosts(connect) == ["db3"]

    def test_failed_slave_falls_back_to_master(self):
        """An unreachable read host is retried once against the master."""
        def connect_host(adapter, params):
            if params["hostname"] == "db3":
                raise sqlite3.OperationalError("unreachable")

        connection = deploy_connection(rw_separate=True, slave_no=2)
        with mock.patch.object(SQLiteAdapter, "connect", autospec=True, side_effect=connect_host) as connect:
            connection.init_connect(False)
        assert connected_hosts(connect) == ["db3", "db1"]

    def test_reads_use_master_inside_transaction(self):
        connection = deploy_connection(rw_separate=True, slave_no=2)
        connection._trans_times = 1
        with mock.patch.object(SQLiteAdapter, "connect", autospec=True) as connect:
            connection.init_connect(False)
        assert connected_hosts(connect) == ["db1"]
