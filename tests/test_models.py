"""
Models (models/base.py, attribute.py, conversion.py, timestamp.py, soft_delete.py)

Tests the active record life cycle: creating, updating and deleting
rows, casts, accessors and mutators, projection, automatic timestamps,
soft delete, scopes and lifecycle events.
"""

import re

import pytest

from quarry import DbManager, Model
from quarry.faults import ConfigFault, InvalidArgumentFault, MethodNotFoundFault, ModelNotFoundFault
from quarry.models import Collection
from quarry.models.signals import before_delete, before_write, get_signal

from tests.conftest import create_schema, seed_users, sqlite_config


DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")


# ============================================================================
# Models under test
# ============================================================================

class User(Model):
    class Meta:
        table = "user"

    def scope_active(self, query):
        query.where("status", 1)

    def scope_named(self, query, name):
        query.where("name", name)


class ActiveUser(Model):
    class Meta:
        table = "user"
        global_scope = ["active"]

    def scope_active(self, query):
        query.where("status", 1)


class Typed(Model):
    class Meta:
        table = "user"
        casts = {"status": "bool", "score": "int", "email": "json"}


class Upper:
    def __init__(self, value):
        self.value = value.upper()


class Member(Model):
    class Meta:
        table = "user"
        casts = {"name": Upper}

    def get_label_attr(self, value, data):
        return f"{data['name']}#{data['id']}"

    def set_email_attr(self, value, data):
        return value.strip().lower()


class Projected(Model):
    class Meta:
        table = "user"
        hidden = ["email", "create_time", "update_time"]
        mapping = {"name": "nickname"}
        scene = {"card": {"visible": ["id", "name"]}}


class Guarded(Model):
    class Meta:
        table = "user"
        readonly = ["email"]
        disuse = ["score"]


class Stamped(Model):
    class Meta:
        table = "user"
        auto_write_timestamp = "datetime"


class IntStamped(Model):
    class Meta:
        table = "user"
        auto_write_timestamp = "int"


class DetectStamped(Model):
    class Meta:
        table = "user"
        auto_write_timestamp = True


class Post(Model):
    class Meta:
        soft_delete = True


class Hooked(Model):
    class Meta:
        table = "user"

    def on_before_insert(self):
        self.email = "hooked@test.com"

    def on_before_delete(self):
        if self.name == "keep":
            return False


class Orphan(Model):
    class Meta:
        table = "user"


@pytest.fixture
def models(db):
    db.registry.register(
        User, ActiveUser, Typed, Member, Projected, Guarded,
        Stamped, IntStamped, DetectStamped, Post, Hooked,
    )
    return db


# ============================================================================
# Create / read
# ============================================================================

class TestCreate:

    def test_create(self, models):
        user = User.create({"name": "alice", "email": "alice@test.com"})
        assert user.exists()
        assert user.id == 1
        assert models.table("user").where("id", 1).value("name") == "alice"

    def test_save_new_instance(self, models):
        user = User({"name": "bob"})
        assert not user.exists()
        assert user.save() is True
        assert user.exists()
        assert user.get_key() == 1

    def test_unknown_columns_are_dropped(self, models):
        User.create({"name": "carol", "nickname": "c"})
        assert models.table("user").count() == 1

    def test_save_empty_model(self, models):
        assert User().save() is False
        assert models.table("user").count() == 0

    def test_find(self, models):
        seed_users(models)
        user = User.find(2)
        assert isinstance(user, User)
        assert user.exists()
        assert user.name == "user2"
        assert user["email"] == "user2@test.com"
        assert "name" in user

    def test_find_missing(self, models):
        assert User.find(9) is None
        with pytest.raises(ModelNotFoundFault) as exc:
            User.find_or_fail(9)
        assert exc.value.model == "User"
        empty = User.find_or_empty(9)
        assert isinstance(empty, User)
        assert empty.is_empty()

    def test_select_returns_collection(self, models):
        seed_users(models)
        users = User.where("status", 1).order("id").select()
        assert isinstance(users, Collection)
        assert [user.id for user in users] == [1, 3]

    def test_unknown_attribute(self, models):
        user = User.create({"name": "dave"})
        with pytest.raises(InvalidArgumentFault) as exc:
            user.get_data("nope")
        assert exc.value.message == "property not exists:User->nope"
        with pytest.raises(KeyError):
            user["nope"]
        with pytest.raises(AttributeError):
            user.nope

    def test_repr(self, models):
        user = User.create({"name": "erin"})
        assert repr(user) == "<User pk=1>"

    def test_unregistered_model(self):
        with pytest.raises(ConfigFault) as exc:
            Orphan.query()
        assert exc.value.code == "MODEL_NOT_REGISTERED"

    def test_init_runs_once_per_class(self, models):
        calls = []

        class Counted(Model):
            class Meta:
                table = "user"

            @classmethod
            def init(cls):
                calls.append(cls)

        Counted()
        Counted()
        assert calls == [Counted]


# ============================================================================
# Update / delete
# ============================================================================

class TestUpdate:

    def test_only_changed_columns_are_written(self, models, counter):
        seed_users(models)
        user = User.find(1)
        user.name = "renamed"
        assert user.get_change_data() == {"name": "renamed"}
        counter.reset()
        assert user.save() is True
        assert counter.statements == ["UPDATE `user` SET `name` = 'renamed' WHERE `id` = 1"]
        assert user.get_change_data() == {}

    def test_unchanged_save_runs_no_update(self, models, counter):
        """Saving a model with no changes touches nothing."""
        seed_users(models)
        user = User.find(1)
        counter.reset()
        assert user.save() is True
        assert not [sql for sql in counter.statements if sql.startswith("UPDATE")]

    def test_save_with_data(self, models):
        seed_users(models)
        user = User.find(1)
        user.save({"status": 5})
        assert models.table("user").where("id", 1).value("status") == 5

    def test_force_writes_everything(self, models, counter):
        seed_users(models)
        user = User.find(1)
        counter.reset()
        user.force().save()
        update = [sql for sql in counter.statements if sql.startswith("UPDATE")][0]
        assert "`email` = 'user1@test.com'" in update

    def test_readonly_and_disuse(self, models):
        seed_users(models)
        user = Guarded.find(1)
        assert "score" not in user.get_data()
        user.email = "changed@test.com"
        user.name = "changed"
        user.save()
        row = models.table("user").where("id", 1).find()
        assert row["name"] == "changed"
        assert row["email"] == "user1@test.com"

    def test_class_update_with_where(self, models):
        seed_users(models)
        User.update({"status": 7}, {"name": "user2"})
        assert models.table("user").where("id", 2).value("status") == 7

    def test_class_update_by_pk_in_data(self, models):
        seed_users(models)
        User.update({"id": 3, "name": "third"})
        assert models.table("user").where("id", 3).value("name") == "third"

    def test_refresh(self, models):
        seed_users(models)
        user = User.find(1)
        models.table("user").where("id", 1).update({"name": "outside"})
        assert user.refresh().name == "outside"

    def test_save_all(self, models):
        seed_users(models)
        saved = User().save_all([{"name": "new"}, {"id": 1, "name": "first"}])
        assert isinstance(saved, Collection)
        assert len(saved) == 2
        assert models.table("user").count() == 4
        assert models.table("user").where("id", 1).value("name") == "first"


class TestDelete:

    def test_delete(self, models):
        seed_users(models)
        user = User.find(1)
        assert user.delete() is True
        assert not user.exists()
        assert models.table("user").count() == 2

    def test_delete_new_model(self, models):
        assert User({"name": "x"}).delete() is False

    def test_destroy_forms(self, models):
        seed_users(models, 6)
        assert User.destroy(1) is True
        assert User.destroy([2, 3]) is True
        assert User.destroy({"name": "user4"}) is True
        assert User.destroy(lambda query: query.where("id", ">", 5)) is True
        assert models.table("user").column("id") == [5]

    def test_destroy_nothing(self, models):
        assert User.destroy([]) is False
        assert User.destroy(None) is False


# ============================================================================
# Casts / accessors / mutators
# ============================================================================

class TestAttributes:

    def test_casts_round_trip(self, models):
        Typed.create({"name": "t", "status": True, "score": 3.7, "email": {"plan": "pro"}})
        row = models.table("user").where("id", 1).find()
        assert row["score"] == 3
        assert row["email"] == '{"plan": "pro"}'

        typed = Typed.find(1)
        assert typed.status is True
        assert typed.score == 3
        assert typed.email == {"plan": "pro"}

    def test_cast_on_assignment(self, models):
        typed = Typed({"name": "t"})
        typed.score = "5"
        assert typed.get_data("score") == 5

    def test_class_cast(self, models):
        seed_users(models)
        member = Member.find(1)
        assert isinstance(member.name, Upper)
        assert member.name.value == "USER1"

    def test_accessor(self, models):
        seed_users(models)
        member = Member.find(2)
        assert member.label == "user2#2"

    def test_mutator(self, models):
        member = Member()
        member.email = "  Mixed@Test.COM "
        assert member.get_data("email") == "mixed@test.com"

    def test_with_attribute(self, models):
        seed_users(models)
        user = User.find(1)
        user.with_attribute("name", lambda value, data: value.title())
        assert user.name == "User1"

    def test_query_with_attr(self, models):
        seed_users(models)
        user = User.where("id", 1).with_attr("name", lambda value, data: value[::-1]).find()
        assert user.name == "1resu"

    def test_set_bypasses_mutators(self, models):
        member = Member()
        member.set("email", " RAW ")
        assert member.get_data("email") == " RAW "

    def test_macro(self, models):
        seed_users(models)
        models.registry.macro(User, "shout", lambda user: user.name.upper())
        assert User.find(1).shout() == "USER1"


# ============================================================================
# Projection
# ============================================================================

class TestConversion:

    def test_hidden_and_mapping(self, models):
        seed_users(models)
        data = Projected.find(1).to_dict()
        assert data == {
            "id": 1, "nickname": "user1", "status": 1, "score": 10.0, "country_id": None,
        }

    def test_visible_and_append(self, models):
        seed_users(models)
        member = Member.find(1)
        member.visible(["id"]).append(["label"])
        assert member.to_dict() == {"id": 1, "label": "user1#1"}

    def test_scene(self, models):
        seed_users(models)
        assert Projected.find(2).scene("card").to_dict() == {"id": 2, "nickname": "user2"}

    def test_camel_case(self, models):
        seed_users(models)
        data = User.find(1).visible(["id", "country_id"]).convert_name_to_camel().to_dict()
        assert data == {"id": 1, "countryId": None}

    def test_to_json(self, models):
        seed_users(models)
        assert User.find(1).visible(["id", "name"]).to_json() == '{"id": 1, "name": "user1"}'

    def test_collection_projection(self, models):
        seed_users(models, 2)
        users = User.order("id").select()
        assert users.visible(["name"]).to_dict() == [{"name": "user1"}, {"name": "user2"}]


# ============================================================================
# Timestamps
# ============================================================================

class TestTimestamps:

    def test_disabled_by_default(self, models):
        user = User.create({"name": "plain"})
        assert models.table("user").where("id", user.id).value("create_time") is None

    def test_datetime(self, models):
        user = Stamped.create({"name": "stamped"})
        row = models.table("user").where("id", user.id).find()
        assert DATETIME_RE.match(row["create_time"])
        assert DATETIME_RE.match(row["update_time"])
        assert user.create_time == row["create_time"]

    def test_update_touches_update_time(self, models, counter):
        user = Stamped.create({"name": "stamped"})
        loaded = Stamped.find(user.id)
        loaded.name = "changed"
        counter.reset()
        loaded.save()
        update = [sql for sql in counter.statements if sql.startswith("UPDATE")][0]
        assert "`update_time` = '" in update
        assert "`create_time`" not in update

    def test_int_stamp_is_formatted_on_read(self, models):
        user = IntStamped.create({"name": "int"})
        stored = models.table("user").where("id", user.id).value("create_time")
        assert isinstance(stored, int)
        assert DATETIME_RE.match(IntStamped.find(user.id).create_time)

    def test_detected_from_column_type(self, models):
        user = DetectStamped.create({"name": "detect"})
        assert DATETIME_RE.match(models.table("user").where("id", user.id).value("create_time"))

    def test_connection_default(self):
        """auto_timestamp on the connection applies when the model leaves it unset."""
        db = DbManager(sqlite_config(auto_timestamp="int"))
        create_schema(db)
        db.registry.register(User)
        user = User.create({"name": "conn"})
        assert isinstance(db.table("user").where("id", user.id).value("create_time"), int)
        db.close()


# ============================================================================
# Soft delete
# ============================================================================

class TestSoftDelete:

    def _posts(self):
        first = Post.create({"user_id": 1, "title": "first"})
        Post.create({"user_id": 1, "title": "second"})
        return first

    def test_delete_marks_row(self, models):
        post = self._posts()
        assert post.delete() is True
        assert post.trashed()
        assert isinstance(models.table("post").where("id", post.id).value("delete_time"), int)
        assert models.table("post").count() == 2

    def test_queries_hide_deleted_rows(self, models):
        self._posts().delete()
        assert Post.count() == 1
        assert [post.title for post in Post.select()] == ["second"]
        assert Post.find(1) is None

    def test_with_and_only_trashed(self, models):
        self._posts().delete()
        assert Post.with_trashed().count() == 2
        assert [post.title for post in Post.only_trashed().select()] == ["first"]

    def test_restore(self, models):
        self._posts().delete()
        post = Post.only_trashed().find(1)
        assert post.restore() is True
        assert not post.trashed()
        assert Post.count() == 2

    def test_force_delete(self, models):
        post = self._posts()
        post.force().delete()
        assert models.table("post").count() == 1

    def test_query_delete_is_soft(self, models):
        """Deleting through the query marks rows instead of removing them."""
        self._posts()
        Post.where("title", "second").delete()
        assert models.table("post").count() == 2
        assert Post.count() == 1


# ============================================================================
# Scopes
# ============================================================================

class TestScopes:

    def test_named_scope(self, models):
        seed_users(models)
        assert User.scope("active").count() == 2
        assert User.scope("named", "user2").value("id") == 2

    def test_unknown_scope(self, models):
        with pytest.raises(MethodNotFoundFault) as exc:
            User.scope("missing")
        assert exc.value.method == "scope_missing"

    def test_global_scope(self, models):
        seed_users(models)
        assert ActiveUser.count() == 2
        assert ActiveUser.without_global_scope().count() == 3
        assert ActiveUser.without_global_scope(["active"]).count() == 3


# ============================================================================
# Events
# ============================================================================

class TestEvents:

    def test_write_order(self, models):
        events = []
        for name in ("before_write", "before_insert", "after_insert", "after_write"):
            get_signal(name).connect(
                lambda sender, instance, _name=name, **kwargs: events.append(_name), sender=User,
            )
        User.create({"name": "ordered"})
        assert events == ["before_write", "before_insert", "after_insert", "after_write"]

    def test_before_write_cancels(self, models):
        def refuse(sender, instance, **kwargs):
            return False

        with before_write.connected(refuse, sender=User):
            assert User().save({"name": "nope"}) is False
        assert models.table("user").count() == 0

    def test_sender_filter(self, models):
        seen = []
        before_write.connect(lambda sender, instance, **kwargs: seen.append(sender), sender=Typed)
        User.create({"name": "ignored"})
        Typed.create({"name": "seen"})
        assert seen == [Typed]

    def test_model_hooks(self, models):
        hooked = Hooked.create({"name": "keep"})
        assert models.table("user").where("id", hooked.id).value("email") == "hooked@test.com"
        assert hooked.delete() is False
        assert models.table("user").count() == 1

    def test_delete_receiver_cancels(self, models):
        seed_users(models)
        before_delete.connect(lambda sender, instance, **kwargs: instance.id != 1, sender=User)
        assert User.find(1).delete() is False
        assert User.find(2).delete() is True

    def test_without_events(self, models):
        calls = []
        before_write.connect(lambda sender, instance, **kwargs: calls.append(instance))
        User().with_event(False).save({"name": "quiet"})
        assert calls == []

    def test_after_read(self, models):
        seed_users(models)
        loaded = []
        get_signal("after_read").connect(lambda sender, instance, **kwargs: loaded.append(instance.id))
        User.order("id").select()
        assert loaded == [1, 2, 3]
