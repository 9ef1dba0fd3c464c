"""
Query (db/query/)

Tests the table query API against a live SQLite database: CRUD,
aggregates, pagination, chunking, cursors and result handling.
"""

import pytest

from quarry.db.query.cursor import Cursor
from quarry.db.query.paginator import Paginator
from quarry.faults import DataNotFoundFault, DbFault

from tests.conftest import seed_users


# ============================================================================
# Writes
# ============================================================================

class TestWrites:

    def test_insert_returns_count(self, db):
        assert db.table("role").insert({"name": "admin"}) == 1

    def test_insert_get_id(self, db):
        assert db.table("role").insert_get_id({"name": "a"}) == 1
        assert db.table("role").insert({"name": "b"}, get_last_ins_id=True) == 2

    def test_insert_all(self, db):
        assert db.table("role").insert_all([{"name": "a"}, {"name": "b"}, {"name": "c"}]) == 3
        assert db.table("role").count() == 3

    def test_insert_all_empty(self, db):
        assert db.table("role").insert_all([]) == 0

    def test_data_option(self, db):
        db.table("role").data({"name": "x"}).insert()
        assert db.table("role").where("id", 1).value("name") == "x"

    def test_update(self, db):
        seed_users(db)
        assert db.table("user").where("status", 1).update({"email": "x@y.z"}) == 2
        assert db.table("user").where("email", "x@y.z").count() == 2

    def test_update_by_pk_in_data(self, db):
        seed_users(db)
        db.table("user").update({"id": 2, "name": "second"})
        assert db.table("user").where("id", 2).value("name") == "second"

    def test_update_without_condition(self, db):
        with pytest.raises(DbFault):
            db.table("user").update({"name": "x"})

    def test_save_inserts_or_updates(self, db):
        assert db.table("role").save({"name": "a"}) == 1
        assert db.table("role").save({"id": 1, "name": "b"}) == 1
        assert db.table("role").column("name") == ["b"]

    def test_save_force_insert(self, db):
        db.table("role").insert({"name": "a"})
        db.table("role").save({"id": 5, "name": "b"}, force_insert=True)
        assert db.table("role").column("id") == [1, 5]

    def test_inc_dec(self, db):
        seed_users(db)
        db.table("user").where("id", 1).set_inc("status", 3)
        db.table("user").where("id", 1).set_dec("score", 2.5)
        row = db.table("user").where("id", 1).find()
        assert row["status"] == 4
        assert row["score"] == 7.5

    def test_delete(self, db):
        seed_users(db)
        assert db.table("user").where("id", 1).delete() == 1
        assert db.table("user").delete([2, 3]) == 2
        assert db.table("user").count() == 0

    def test_delete_all(self, db):
        seed_users(db)
        assert db.table("user").delete(True) == 3

    def test_delete_without_condition(self, db):
        with pytest.raises(DbFault):
            db.table("user").delete()

    def test_select_insert(self, db):
        seed_users(db)
        db.table("user").field("name").where("status", 1).select_insert(["name"], "role")
        assert db.table("role").column("name") == ["user1", "user3"]

    def test_replace(self, db):
        db.table("role").insert({"name": "a"})
        db.table("role").replace().insert({"id": 1, "name": "b"})
        assert db.table("role").column("name") == ["b"]


# ============================================================================
# Reads
# ============================================================================

class TestReads:

    def test_select(self, db):
        seed_users(db)
        rows = db.table("user").where("status", 1).order("id").select()
        assert [row["name"] for row in rows] == ["user1", "user3"]
        assert isinstance(rows, list)

    def test_select_by_pk(self, db):
        seed_users(db)
        assert [row["id"] for row in db.table("user").select([1, 3])] == [1, 3]

    def test_find(self, db):
        seed_users(db)
        row = db.table("user").find(2)
        assert row["name"] == "user2"
        assert row["email"] == "user2@test.com"

    def test_find_missing(self, db):
        assert db.table("user").find(99) is None

    def test_find_without_condition(self, db):
        seed_users(db)
        assert db.table("user").find() is None
        assert db.table("user").order("id", "desc").find()["id"] == 3

    def test_find_or_fail(self, db):
        with pytest.raises(DataNotFoundFault) as exc:
            db.table("user").find_or_fail(1)
        assert exc.value.table == "user"

    def test_select_or_fail(self, db):
        with pytest.raises(DataNotFoundFault):
            db.table("user").where("status", 1).select_or_fail()

    def test_find_or_empty(self, db):
        assert db.table("user").find_or_empty(1) == {}

    def test_get_by(self, db):
        seed_users(db)
        assert db.table("user").get_by("name", "user3")["id"] == 3
        assert db.table("user").get_field_by("name", "user3", "email") == "user3@test.com"

    def test_value(self, db):
        seed_users(db)
        assert db.table("user").where("id", 1).value("email") == "user1@test.com"
        assert db.table("user").where("id", 99).value("email", "none") == "none"

    def test_column(self, db):
        seed_users(db)
        assert db.table("user").order("id").column("name") == ["user1", "user2", "user3"]

    def test_column_keyed(self, db):
        seed_users(db)
        assert db.table("user").column("name", "id") == {1: "user1", 2: "user2", 3: "user3"}

    def test_column_rows(self, db):
        seed_users(db)
        rows = db.table("user").column("name,email", "id")
        assert rows[2] == {"name": "user2", "email": "user2@test.com", "id": 2}
        assert db.table("user").where("id", 99).column("name", "id") == {}

    def test_join_select(self, db):
        seed_users(db)
        db.table("profile").insert({"user_id": 2, "email": "p2@test.com", "age": 30})
        rows = (
            db.table("user u").join("profile p", "p.user_id = u.id")
            .field("u.name, p.age").select()
        )
        assert rows == [{"name": "user2", "age": 30}]

    def test_left_join(self, db):
        seed_users(db)
        rows = (
            db.table("user").left_join("profile", "profile.user_id = user.id")
            .field("user.id, profile.age").order("user.id").select()
        )
        assert [row["age"] for row in rows] == [None, None, None]

    def test_group_having(self, db):
        seed_users(db)
        rows = (
            db.table("user").field("status, COUNT(*) AS total").group("status")
            .having("COUNT(*) > 1").select()
        )
        assert rows == [{"status": 1, "total": 2}]

    def test_distinct(self, db):
        seed_users(db)
        assert sorted(db.table("user").distinct().column("status")) == [0, 1]


# ============================================================================
# Aggregates
# ============================================================================

class TestAggregates:

    def test_count(self, db):
        seed_users(db)
        assert db.table("user").count() == 3
        assert db.table("user").where("status", 0).count() == 1
        assert db.table("user").count("email") == 3

    def test_sum_avg(self, db):
        seed_users(db)
        assert db.table("user").sum("score") == 60.0
        assert db.table("user").avg("score") == 20.0

    def test_max_min(self, db):
        seed_users(db)
        assert db.table("user").max("score") == 30.0
        assert db.table("user").min("id", False) == 1

    def test_grouped_count(self, db):
        seed_users(db)
        assert db.table("user").group("status").count() == 2

    def test_empty_table(self, db):
        assert db.table("user").count() == 0
        assert db.table("user").sum("score") == 0.0


# ============================================================================
# Pagination
# ============================================================================

class TestPaginate:

    def test_paginate(self, db):
        seed_users(db, 5)
        page = db.table("user").order("id").paginate(2, 2)
        assert isinstance(page, Paginator)
        assert [row["id"] for row in page] == [3, 4]
        assert page.total == 5
        assert page.last_page == 3
        assert page.has_more is True

    def test_paginate_dict_config(self, db):
        seed_users(db, 5)
        page = db.table("user").order("id").paginate({"list_rows": 2, "page": 3})
        assert [row["id"] for row in page] == [5]
        assert page.has_more is False

    def test_paginate_simple(self, db):
        seed_users(db, 5)
        page = db.table("user").order("id").paginate(2, 1, simple=True)
        assert len(page) == 2
        assert page.total is None
        assert page.has_more is True

    def test_paginate_empty(self, db):
        page = db.table("user").paginate(10)
        assert page.is_empty()
        assert page.total == 0
        assert page.to_dict() == {
            "total": 0, "per_page": 10, "current_page": 1, "last_page": 1, "has_more": False, "data": [],
        }

    def test_paginate_keeps_conditions(self, db):
        seed_users(db, 5)
        page = db.table("user").where("status", 1).order("id").paginate(2, 1)
        assert page.total == 3
        assert [row["id"] for row in page] == [1, 3]

    def test_paginate_x(self, db):
        seed_users(db, 5)
        first = db.table("user").paginate_x(2, 1)
        second = db.table("user").paginate_x(2, 2)
        assert [row["id"] for row in first] == [5, 4]
        assert [row["id"] for row in second] == [3, 2]

    def test_paginate_x_ascending(self, db):
        seed_users(db, 5)
        page = db.table("user").paginate_x(2, 2, sort="asc")
        assert [row["id"] for row in page] == [3, 4]

    def test_more(self, db):
        seed_users(db, 5)
        result = db.table("user").more(2)
        assert [row["id"] for row in result["data"]] == [5, 4]
        assert result["last_id"] == 4
        result = db.table("user").more(2, result["last_id"])
        assert [row["id"] for row in result["data"]] == [3, 2]

    def test_more_exhausted(self, db):
        seed_users(db, 2)
        result = db.table("user").more(5, 1)
        assert result == {"data": [], "last_id": None}


# ============================================================================
# Chunk / cursor
# ============================================================================

class TestChunk:

    def test_chunk(self, db):
        seed_users(db, 5)
        batches = []
        assert db.table("user").chunk(2, lambda rows: batches.append([row["id"] for row in rows])) is True
        assert batches == [[1, 2], [3, 4], [5]]

    def test_chunk_descending(self, db):
        seed_users(db, 3)
        batches = []
        db.table("user").chunk(2, lambda rows: batches.append([row["id"] for row in rows]), order="desc")
        assert batches == [[3, 2], [1]]

    def test_chunk_stops(self, db):
        seed_users(db, 5)
        batches = []

        def handle(rows):
            batches.append(rows)
            return False

        assert db.table("user").chunk(2, handle) is False
        assert len(batches) == 1

    def test_chunk_keeps_conditions(self, db):
        seed_users(db, 6)
        seen = []
        db.table("user").where("status", 1).chunk(2, lambda rows: seen.extend(row["id"] for row in rows))
        assert seen == [1, 3, 5]

    def test_chunk_needs_single_column(self, db):
        with pytest.raises(DbFault):
            db.table("user_role").chunk(2, lambda rows: None, column=["user_id", "role_id"])


class TestCursor:

    def test_iterates_lazily(self, db):
        seed_users(db)
        cursor = db.table("user").order("id").cursor()
        assert isinstance(cursor, Cursor)
        assert next(cursor)["id"] == 1
        assert cursor.fetched == 1
        assert [row["id"] for row in cursor] == [2, 3]
        assert cursor.exhausted

    def test_single_pass(self, db):
        seed_users(db)
        cursor = db.table("user").cursor()
        assert len(list(cursor)) == 3
        assert list(cursor) == []

    def test_context_manager(self, db):
        seed_users(db)
        with db.table("user").cursor() as cursor:
            next(cursor)
        assert cursor.exhausted

    def test_plain_cursor(self):
        cursor = Cursor(iter([1, 2]), lambda value: value * 10)
        assert list(cursor) == [10, 20]
        assert repr(cursor) == "<Cursor exhausted fetched=2>"


# ============================================================================
# Result handling
# ============================================================================

class TestResultHandling:

    def test_visible(self, db):
        seed_users(db)
        row = db.table("user").visible(["id", "name"]).find(1)
        assert row == {"id": 1, "name": "user1"}

    def test_hidden(self, db):
        seed_users(db)
        row = db.table("user").hidden(["email", "score"]).find(1)
        assert "email" not in row
        assert "score" not in row
        assert row["name"] == "user1"

    def test_with_attr(self, db):
        seed_users(db)
        row = db.table("user").with_attr("name", lambda value, data: value.upper()).find(1)
        assert row["name"] == "USER1"

    def test_with_attr_dict(self, db):
        seed_users(db)
        rows = db.table("user").with_attr({
            "email": lambda value, data: value.split("@")[1],
            "status": lambda value, data: bool(value),
        }).order("id").select()
        assert rows[0]["email"] == "test.com"
        assert rows[1]["status"] is False

    def test_json(self, db):
        db.table("user").insert({"name": "j", "email": '{"domain": "x.com", "tags": [1, 2]}'})
        row = db.table("user").json(["email"], True).find(1)
        assert row["email"] == {"domain": "x.com", "tags": [1, 2]}

    def test_json_object(self, db):
        db.table("user").insert({"name": "j", "email": '{"domain": "x.com"}'})
        row = db.table("user").json(["email"]).find(1)
        assert row["email"].domain == "x.com"

    def test_json_nested_with_attr(self, db):
        db.table("user").insert({"name": "j", "email": '{"domain": "x.com"}'})
        row = (
            db.table("user").json(["email"], True)
            .with_attr("email.domain", lambda value, data: value.upper()).find(1)
        )
        assert row["email"]["domain"] == "X.COM"

    def test_filter(self, db):
        seed_users(db)
        rows = db.table("user").filter(lambda row: row["score"] > 15).select()
        assert [row["id"] for row in rows] == [2, 3]

    def test_filter_on_find(self, db):
        seed_users(db)
        assert db.table("user").filter(lambda row: row["id"] != 1).find(1) is None


# ============================================================================
# Query object
# ============================================================================

class TestQueryObject:

    def test_new_query_keeps_table(self, db):
        query = db.table("user u").where("id", 1)
        fresh = query.new_query()
        assert fresh.get_table() == {"user": "u"}
        assert fresh.get_options("where") is None

    def test_main_table(self, db):
        assert db.table("user u, profile p").get_main_table() == "user"
        assert db.name("UserRole").get_main_table() == "user_role"

    def test_prefix(self):
        from quarry import DbManager
        from tests.conftest import sqlite_config

        manager = DbManager(sqlite_config(prefix="app_"))
        assert manager.name("user").get_table() == "app_user"
        assert manager.table("user").get_table() == "user"

    def test_pk(self, db):
        assert db.table("user").get_pk() == "id"
        assert db.table("user_role").pk(["user_id", "role_id"]).get_pk() == ["user_id", "role_id"]

    def test_complex_pk_update(self, db):
        db.table("user_role").insert({"user_id": 1, "role_id": 2, "remark": "a"})
        db.table("user_role").pk(["user_id", "role_id"]).update({"user_id": 1, "role_id": 2, "remark": "b"})
        assert db.table("user_role").where("user_id", 1).value("remark") == "b"

    def test_complex_pk_missing(self, db):
        with pytest.raises(DbFault) as exc:
            db.table("user_role").pk(["user_id", "role_id"]).update({"user_id": 1, "remark": "b"})
        assert exc.value.message == "miss complex primary data"

    def test_remove_option(self, db):
        query = db.table("user").where("id", 1).limit(5)
        query.remove_option("limit")
        assert query.get_options("limit") is None
        query.remove_option()
        assert query.get_options() == {}

    def test_repr(self, db):
        assert repr(db.table("user")) == "<Query table='user'>"
