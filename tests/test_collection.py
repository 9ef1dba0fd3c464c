"""
Collection (models/collection.py)

Tests the result set list: access helpers, in-memory filtering,
key based set operations and bulk writes over models.
"""

import pytest

from quarry import Model
from quarry.models import Collection

from tests.conftest import seed_users


class User(Model):
    pass


class Team(list):
    pass


class Player(Model):
    class Meta:
        table = "user"
        collection_class = Team


ROWS = [
    {"id": 1, "name": "ann", "score": 30},
    {"id": 2, "name": "bob", "score": None},
    {"id": 3, "name": "cid", "score": 10},
]


@pytest.fixture
def rows():
    return Collection.make([dict(row) for row in ROWS])


@pytest.fixture
def users(db):
    db.registry.register(User, Player)
    seed_users(db)
    return User.order("id").select()


# ============================================================================
# Access
# ============================================================================

class TestAccess:

    def test_first_last(self, rows):
        assert rows.first()["name"] == "ann"
        assert rows.last()["name"] == "cid"
        assert Collection().first("none") == "none"

    def test_slice_keeps_type(self, rows):
        part = rows[1:]
        assert isinstance(part, Collection)
        assert len(part) == 2
        assert rows[0]["id"] == 1

    def test_push_and_empty(self):
        items = Collection()
        assert items.is_empty()
        assert items.push({"id": 1}).push({"id": 2}) == [{"id": 1}, {"id": 2}]

    def test_each_stops_on_false(self, rows):
        seen = []
        rows.each(lambda row: seen.append(row["id"]) or row["id"] != 2)
        assert seen == [1, 2]

    def test_map_filter(self, rows):
        assert rows.map(lambda row: row["id"] * 2) == [2, 4, 6]
        assert rows.filter(lambda row: row["score"]).column("id") == [1, 3]

    def test_column(self, rows):
        assert rows.column("name") == ["ann", "bob", "cid"]
        assert rows.column("name", "id") == {1: "ann", 2: "bob", 3: "cid"}
        assert rows.column(None, "name")["bob"]["id"] == 2


# ============================================================================
# In-memory query
# ============================================================================

class TestWhere:

    def test_equal_shorthand(self, rows):
        assert rows.where("name", "bob").column("id") == [2]

    def test_operators(self, rows):
        assert rows.where("score", ">", 15).column("id") == [1]
        assert rows.where("id", "in", [1, 3]).column("id") == [1, 3]
        assert rows.where("id", "between", [2, 3]).column("id") == [2, 3]
        assert rows.where("id", "<>", 2).column("id") == [1, 3]

    def test_incomparable_values_do_not_match(self, rows):
        """None never compares with numbers; such rows are skipped."""
        assert rows.where("score", "<", 20).column("id") == [3]

    def test_like(self, rows):
        assert rows.where_like("name", "%N%").column("id") == [1]
        assert rows.where("name", "not like", "_o_").column("id") == [1, 3]

    def test_where_in(self, rows):
        assert rows.where_in("name", {"ann", "cid"}).column("id") == [1, 3]

    def test_unknown_operator(self, rows):
        with pytest.raises(ValueError):
            rows.where("id", "~", 1)

    def test_order(self, rows):
        assert rows.order("score").column("id") == [2, 3, 1]
        assert rows.order("name", "desc").column("id") == [3, 2, 1]


# ============================================================================
# Keys
# ============================================================================

class TestKeys:

    def test_dictionary_of_rows(self, rows):
        assert list(rows.dictionary()) == [0, 1, 2]
        assert rows.dictionary(index_key="name")["cid"]["id"] == 3

    def test_diff_intersect(self, rows):
        other = [{"id": 2}, {"id": 3}]
        assert rows.diff(other, "id").column("id") == [1]
        assert rows.intersect(other, "id").column("id") == [2, 3]

    def test_key_by(self, rows):
        assert sorted(rows.key_by("name")) == ["ann", "bob", "cid"]


# ============================================================================
# Model sets
# ============================================================================

class TestModelCollection:

    def test_dictionary_uses_primary_key(self, users):
        assert sorted(users.dictionary()) == [1, 2, 3]

    def test_diff_models(self, users):
        others = User.where("status", 1).select()
        assert [user.id for user in users.diff(others)] == [2]
        assert [user.id for user in users.intersect(others)] == [1, 3]

    def test_where_on_models(self, users):
        assert users.where("score", ">=", 20).column("name") == ["user2", "user3"]

    def test_hidden_broadcast(self, users):
        data = users.hidden(["email", "create_time", "update_time", "country_id", "score"]).to_dict()
        assert data[0] == {"id": 1, "name": "user1", "status": 1}

    def test_to_json(self, users):
        assert users.visible(["id"]).to_json() == '[{"id": 1}, {"id": 2}, {"id": 3}]'

    def test_update(self, users, db):
        assert users.update({"status": 9}) is True
        assert db.table("user").where("status", 9).count() == 3

    def test_delete(self, users, db):
        assert users.delete() is True
        assert db.table("user").count() == 0

    def test_custom_collection_class(self, users):
        assert isinstance(Player.select(), Team)
