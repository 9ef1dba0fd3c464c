"""
Query Cache (cache/)

Tests CacheItem, MemoryStore, QueryKeyBuilder and the query cache
integration on a live connection.
"""

import time
from datetime import datetime, timedelta

import pytest

from quarry.cache import CacheEntry, CacheItem, CacheStore, MemoryStore, QueryKeyBuilder, TaggedCache
from quarry.faults import InvalidArgumentFault

from tests.conftest import seed_users


# ============================================================================
# CacheEntry / CacheItem
# ============================================================================

class TestCacheEntry:

    def test_no_expiry(self):
        entry = CacheEntry(key="k", value=1)
        assert entry.is_expired is False
        assert entry.ttl_remaining is None

    def test_expired(self):
        entry = CacheEntry(key="k", value=1, expires_at=time.time() - 1)
        assert entry.is_expired is True
        assert entry.ttl_remaining == 0.0


class TestCacheItem:

    def test_key_and_tag(self):
        item = CacheItem("user:1").tag("users")
        assert item.get_key() == "user:1"
        assert item.get_tag() == "users"
        assert item.is_hit() is False

    def test_set_marks_hit(self):
        item = CacheItem("k").set({"id": 1})
        assert item.is_hit() is True
        assert item.get() == {"id": 1}

    def test_expire_seconds(self):
        item = CacheItem("k").expire(60)
        assert 58 <= item.get_expire() <= 60
        assert 58 <= item.ttl() <= 60

    def test_expire_timedelta(self):
        item = CacheItem("k").expire(timedelta(minutes=2))
        assert 118 <= item.get_expire() <= 120

    def test_expire_datetime(self):
        when = datetime.now() + timedelta(hours=1)
        item = CacheItem("k").expire(when)
        assert item.get_expire() == when
        assert 3590 <= item.ttl() <= 3600

    def test_expire_none(self):
        item = CacheItem("k").expire(None)
        assert item.get_expire() is None
        assert item.ttl() is None

    def test_expire_invalid(self):
        with pytest.raises(InvalidArgumentFault):
            CacheItem("k").expire("tomorrow")
        with pytest.raises(InvalidArgumentFault):
            CacheItem("k").expires_at(60)


# ============================================================================
# MemoryStore
# ============================================================================

class TestMemoryStore:

    def test_satisfies_protocol(self):
        store = MemoryStore()
        assert isinstance(store, CacheStore)
        assert isinstance(store.tag("a"), TaggedCache)
        assert store.name == "memory"

    def test_get_set(self):
        store = MemoryStore()
        assert store.set("a", 1) is True
        assert store.get("a") == 1
        assert store.get("missing", "default") == "default"
        assert store.hits == 1
        assert store.misses == 1

    def test_has_delete(self):
        store = MemoryStore()
        store.set("a", 1)
        assert store.has("a")
        assert "a" in store
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert not store.has("a")

    def test_ttl_expiry(self):
        store = MemoryStore()
        store.set("a", 1, ttl=60)
        store._store["a"].expires_at = time.time() - 1
        assert store.get("a") is None
        assert len(store) == 0

    def test_default_ttl(self):
        store = MemoryStore(default_ttl=30)
        store.set("a", 1)
        assert store._store["a"].expires_at is not None

    def test_lru_eviction(self):
        store = MemoryStore(max_size=2)
        store.set("a", 1)
        store.set("b", 2)
        store.get("a")
        store.set("c", 3)
        assert store.has("a")
        assert not store.has("b")
        assert store.has("c")

    def test_pull(self):
        store = MemoryStore()
        store.set("a", 1)
        assert store.pull("a") == 1
        assert store.pull("a", "gone") == "gone"

    def test_remember(self):
        store = MemoryStore()
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert store.remember("a", factory) == "value"
        assert store.remember("a", factory) == "value"
        assert len(calls) == 1

    def test_tags(self):
        store = MemoryStore()
        store.tag("users").set("u1", 1)
        store.tag(["users", "admins"]).set("u2", 2)
        store.set("other", 3)
        store.tag("users").clear()
        assert not store.has("u1")
        assert not store.has("u2")
        assert store.has("other")

    def test_tag_append(self):
        store = MemoryStore()
        store.set("a", 1)
        store.tag("group").append("a")
        assert store.delete_by_tags(["group"]) == 1
        assert not store.has("a")

    def test_clear_and_keys(self):
        store = MemoryStore()
        store.set("a", 1)
        store.set("b", 2)
        assert sorted(store.keys()) == ["a", "b"]
        store.clear()
        assert store.keys() == []


# ============================================================================
# QueryKeyBuilder
# ============================================================================

class TestQueryKeyBuilder:

    def test_for_pk(self):
        builder = QueryKeyBuilder()
        assert builder.for_pk("shop", "users", 1) == "quarry_shop.users|1"
        assert builder.for_pk("", "users", 1) == "quarry_users|1"

    def test_for_sql_is_deterministic(self):
        builder = QueryKeyBuilder()
        first = builder.for_sql("SELECT * FROM users WHERE id = :a", {"a": (1, "int")})
        second = builder.for_sql("SELECT * FROM users WHERE id = :a", {"a": (1, "int")})
        other = builder.for_sql("SELECT * FROM users WHERE id = :a", {"a": (2, "int")})
        assert first == second
        assert first != other
        assert first.startswith("quarry_sql_")
        assert len(first) == len("quarry_sql_") + 32

    def test_custom_prefix(self):
        assert QueryKeyBuilder(prefix="app:").for_pk("", "t", 5) == "app:t|5"

    def test_for_schema(self):
        assert QueryKeyBuilder().for_schema("db1", 3306, "shop", "users") == "db1:3306@shop.users"


# ============================================================================
# Query cache integration
# ============================================================================

class TestQueryCache:

    def test_ignored_without_store(self, db):
        seed_users(db)
        query = db.table("user").cache("all")
        assert "cache" not in query.get_options()
        assert len(query.select()) == 3

    def test_cached_select(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)

        rows = db.table("user").cache("users:all").select()
        assert len(rows) == 3
        assert store.has("users:all")

        db.table("user").insert({"name": "late"})
        assert len(db.table("user").cache("users:all").select()) == 3
        assert len(db.table("user").select()) == 4

    def test_cache_hits_are_copies(self, db):
        db.set_cache(MemoryStore())
        seed_users(db)
        rows = db.table("user").cache("users:all").select()
        rows[0]["name"] = "mutated"
        again = db.table("user").cache("users:all").select()
        assert again[0]["name"] == "user1"

    def test_pk_key(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        row = db.table("user").where("id", 1).cache(True).find()
        assert row["name"] == "user1"
        assert store.has("quarry_:memory:.user|1")

    def test_write_clears_key(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").where("id", 1).cache("user:1").find()
        assert store.has("user:1")
        db.table("user").where("id", 1).cache("user:1").update({"name": "changed"})
        assert not store.has("user:1")
        assert db.table("user").where("id", 1).cache("user:1").find()["name"] == "changed"

    def test_write_clears_derived_pk_key(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").where("id", 1).cache(True).find()
        assert store.has("quarry_:memory:.user|1")
        db.table("user").where("id", 1).cache(True).update({"name": "changed"})
        assert not store.has("quarry_:memory:.user|1")

    def test_write_without_exact_key_clears_tag(self, db):
        """A derived key without a pk condition falls back to the tag."""
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").where("status", 1).cache(True, 60, "users").select()
        assert len(store.keys()) == 1
        db.table("user").where("status", 1).cache(True, 60, "users").update({"score": 0})
        assert store.keys() == []

    def test_write_exact_key_keeps_tag(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").cache("active", 60, "users").where("status", 1).select()
        db.table("user").cache("inactive", 60, "users").where("status", 0).select()
        db.table("user").where("status", 1).cache("active", 60, "users").update({"score": 0})
        assert not store.has("active")
        assert store.has("inactive")

    def test_tagged_entries(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").cache("active", 60, "users").where("status", 1).select()
        db.table("user").cache("inactive", 60, "users").where("status", 0).select()
        assert store.has("active") and store.has("inactive")
        store.tag("users").clear()
        assert not store.has("active")
        assert not store.has("inactive")

    def test_cached_value_and_column(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        assert db.table("user").where("id", 2).cache("name2").value("name") == "user2"
        assert store.get("name2") == "user2"
        assert db.table("user").cache("names").column("name") == ["user1", "user2", "user3"]
        assert store.get("names") == ["user1", "user2", "user3"]

    def test_expire_only(self, db):
        store = MemoryStore()
        db.set_cache(store)
        seed_users(db)
        db.table("user").where("status", 1).cache(60).select()
        keys = store.keys()
        assert len(keys) == 1
        assert keys[0].startswith("quarry_sql_")
