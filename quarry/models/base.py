"""
Quarry Model Base — active record models over the query builder.

A model instance holds one row: ``_data`` (current values), ``_origin``
(the snapshot taken at load / last save) and the loaded relations.
``save()`` inserts a new row or writes the attributes that differ from
the snapshot; timestamps, soft delete, global scopes, events and
relation writes hook into that path.

Usage:
    from quarry import DbManager, Model, relationship

    class User(Model):
        class Meta:
            table = "user"
            auto_write_timestamp = "datetime"
            casts = {"score": "float"}

        @relationship
        def posts(self):
            return self.has_many("Post")

        def scope_active(self, query):
            query.where("status", 1)

    db = DbManager(config)
    db.registry.register(User, Post)

    user = User.create({"name": "Alice"})
    user.name = "Bob"
    user.save()

    User.where("status", 1).with_("posts").order("id", "desc").select()
    User.update({"status": 0}, {"name": "Bob"})
    User.destroy([1, 2, 3])
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional

from ..faults import ConfigFault, InvalidArgumentFault
from ..utils import snake
from .attribute import Attribute
from .conversion import Conversion
from .events import ModelEvent
from .metaclass import MODEL_QUERY_METHODS, ModelMeta
from .options import Options
from .relationship import RelationShip, relationship
from .soft_delete import SoftDelete
from .timestamp import TimeStamp

if TYPE_CHECKING:
    from ..db.connection import Connection
    from ..db.manager import DbManager
    from ..db.query import BaseQuery
    from .registry import ModelRegistry

logger = logging.getLogger("quarry.models")

__all__ = ["Model"]


class Model(Attribute, RelationShip, Conversion, ModelEvent, SoftDelete, TimeStamp, metaclass=ModelMeta):
    """
    Quarry Model base class.

    Define models by subclassing; options go in an inner ``Meta`` class
    (see ``Options``) and relations are methods decorated with
    ``relationship``. Attributes are read and written as plain
    attributes (``user.name``) or items (``user["name"]``).

    Query methods called on the class (``User.where(...)``,
    ``User.find(1)``) run on a new query bound to a fresh instance.
    """

    _meta: ClassVar[Options] = Options("Model")
    _registry: ClassVar[Optional["ModelRegistry"]] = None

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        meta = self._meta
        self._data = {k: v for k, v in (data or {}).items() if k not in meta.disuse}
        self._origin = {}
        self._get = {}
        self._relation = {}
        self._with_attr = {}
        self._exists = False
        self._force = False
        self._replace = False
        self._field = list(meta.field)
        self._readonly = list(meta.readonly)
        self._suffix = meta.suffix
        self._connection = meta.connection
        self._update_where = None
        self._parent = None
        self._relation_name = ""
        self._together = []
        self._relation_write = {}
        self._visible = list(meta.visible)
        self._hidden = list(meta.hidden)
        self._append = dict(meta.append) if isinstance(meta.append, dict) else list(meta.append)
        self._mapping = dict(meta.mapping)
        self._convert_name_to_camel = meta.convert_name_to_camel
        self._with_event = True
        self._with_trashed = False
        self._auto_write_timestamp = meta.auto_write_timestamp
        self._sync_origin()

        registry = self._registry
        if registry is not None:
            registry.run_makers(self)
        type(self)._boot()

    @classmethod
    def _boot(cls) -> None:
        if "_booted" not in cls.__dict__:
            cls._booted = True
            cls.init()

    @classmethod
    def init(cls) -> None:
        """Runs once per model class, before its first instance is ready."""

    # ── Attribute access ─────────────────────────────────────────────

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or isinstance(_class_attr(type(self), name), (relationship, property)):
            object.__setattr__(self, name, value)
        else:
            self.set_attr(name, value)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get_attr(name)
        except InvalidArgumentFault:
            pass

        registry = self._registry
        macro = registry.get_macro(type(self), name) if registry is not None else None
        if macro is not None:
            return functools.partial(macro, self)
        if name in MODEL_QUERY_METHODS:
            return getattr(self.db(), name)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __delattr__(self, name: str) -> None:
        if name.startswith("_"):
            object.__delattr__(self, name)
            return
        self._data.pop(name, None)
        self._relation.pop(name, None)
        self._get.pop(name, None)

    def __getitem__(self, name: str) -> Any:
        try:
            return self.get_attr(name)
        except InvalidArgumentFault:
            raise KeyError(name) from None

    def __setitem__(self, name: str, value: Any) -> None:
        self.set_attr(name, value)

    def __delitem__(self, name: str) -> None:
        self.__delattr__(name)

    def __contains__(self, name: str) -> bool:
        return name in self._data or name in self._relation

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} pk={self.get_key()!r}>"

    # ── Binding ──────────────────────────────────────────────────────

    def get_db(self) -> "DbManager":
        """
        The ``DbManager`` this model is registered with.

        Raises ``ConfigFault`` (``MODEL_NOT_REGISTERED``) when the model
        class was never registered.
        """
        registry = self._registry
        if registry is None:
            name = type(self).__name__
            raise ConfigFault(
                code="MODEL_NOT_REGISTERED",
                message=f"model not registered: {name}",
                metadata={"model": name},
            )
        return registry.get_db()

    def get_connection(self) -> "Connection":
        return self.get_db().connect(self._connection or None)

    def set_connection(self, connection: str):
        """Use the named ``DbManager`` connection for this instance."""
        self._connection = connection
        return self

    def set_suffix(self, suffix: str):
        """Table name suffix for sharded tables (``user`` -> ``user_2024``)."""
        self._suffix = suffix
        return self

    def get_suffix(self) -> str:
        return self._suffix

    def get_name(self) -> str:
        return self._meta.name

    def get_table(self) -> str:
        """The full table name, prefix and suffix included."""
        if self._meta.table:
            return self._meta.table + self._suffix
        prefix = self.get_connection().get_config("prefix") or ""
        return prefix + snake(self._meta.name + self._suffix)

    def _bind_table(self, connection: "Connection") -> "BaseQuery":
        if self._meta.table:
            return connection.table(self._meta.table + self._suffix)
        return connection.name(self._meta.name + self._suffix)

    def db(self, scope: Any = True) -> "BaseQuery":
        """
        A query bound to this model: table, primary key, JSON columns,
        the soft delete rule and the global scopes.

        ``scope`` is ``True`` for every ``Meta.global_scope``, a list to
        leave the listed scopes out, or ``None`` / ``False`` for none.
        """
        meta = self._meta
        query = self._bind_table(self.get_connection())
        if meta.pk:
            query.pk(meta.pk)
        query.set_model(self)

        if meta.json:
            query.json(meta.json, meta.json_assoc)
        if meta.schema:
            query.set_field_type({**meta.schema, **meta.json_type})

        if self.uses_soft_delete() and not self._with_trashed:
            query.use_soft_delete(self.get_delete_time_field(True), self.soft_delete_condition())

        if scope is True:
            names = list(meta.global_scope)
        elif isinstance(scope, (list, tuple)):
            names = [name for name in meta.global_scope if name not in scope]
        else:
            names = []
        if names:
            query.scope(names)
        return query

    @classmethod
    def query(cls) -> "BaseQuery":
        """
        Start a query chain.

        Usage:
            users = User.query().where("status", 1).select()
        """
        return cls().db()

    @classmethod
    def without_global_scope(cls, scope: Optional[List[str]] = None) -> "BaseQuery":
        """A query without the listed global scopes (all of them by default)."""
        return cls().db(list(scope) if scope else None)

    # ── State ────────────────────────────────────────────────────────

    def new_instance(self, data: Optional[Dict[str, Any]] = None, where: Any = None,
                     options: Optional[Dict[str, Any]] = None) -> "Model":
        """A model of the same class holding ``data`` (an existing row when non-empty)."""
        model = self._new_model(data)
        model._connection = self._connection
        model._suffix = self._suffix
        if not data:
            return model
        model._exists = True
        model._update_where = where
        model.trigger("after_read")
        return model

    def _new_model(self, data: Optional[Dict[str, Any]]) -> "Model":
        return type(self)(data)

    def exists(self, exists: Optional[bool] = None) -> Any:
        """``exists()`` reports whether the row is stored; ``exists(flag)`` sets it."""
        if exists is None:
            return self._exists
        self._exists = exists
        return self

    def is_exists(self) -> bool:
        return self._exists

    def force(self, force: bool = True):
        """Write every attribute on update; skip soft delete on delete."""
        self._force = force
        return self

    def is_force(self) -> bool:
        return self._force

    def replace(self, replace: bool = True):
        """Insert with ``REPLACE`` semantics."""
        self._replace = replace
        return self

    def is_empty(self) -> bool:
        return not self._data

    def set_update_where(self, where: Any):
        """The condition used to update a row whose primary key is unknown."""
        self._update_where = where
        return self

    def get_where(self) -> Any:
        """The condition identifying this row: its loaded primary key, else the update where."""
        where = [[field, "=", self._origin[field]] for field in self._meta.pk_fields()
                 if self._origin.get(field) is not None]
        return where or self._update_where or None

    # ── Writes ───────────────────────────────────────────────────────

    def save(self, data: Any = None, sequence: Optional[str] = None) -> bool:
        """
        Insert the row, or update the changed attributes of a stored row.

        Returns ``False`` when there is no data or a ``before_*`` hook
        cancelled the write.
        """
        if data is not None:
            if isinstance(data, Model):
                data = data.get_data()
            self.set_attrs(data)

        if self.is_empty() or not self.trigger("before_write"):
            return False
        result = self._update_data() if self._exists else self._insert_data(sequence)
        if not result:
            return False

        self.trigger("after_write")
        self._sync_origin()
        self._get = {}
        return True

    def _check_allow_fields(self) -> List[str]:
        meta = self._meta
        if not self._field:
            if meta.schema:
                return list({**meta.schema, **meta.json_type})
            return self.get_connection().get_table_fields(self.get_table())

        fields = list(self._field)
        extra = list(meta.time_fields) if self.get_auto_write_timestamp() else []
        if self.uses_soft_delete():
            extra.append(self.get_delete_time_field())
        fields.extend(name for name in extra if name not in fields)
        return [name for name in fields if name not in meta.disuse]

    def _insert_data(self, sequence: Optional[str] = None) -> bool:
        if not self.trigger("before_insert"):
            return False

        data = dict(self._data)
        self._write_timestamps(data, self._meta.time_fields)
        allow = self._check_allow_fields()

        db = self.db()
        db.start_trans()
        try:
            db.strict(self._meta.strict).field(allow).replace(self._replace).sequence(sequence).insert(data)
            pk = self.get_pk()
            inserted = db.get_options("data") or {}
            if isinstance(pk, str) and self._data.get(pk) in (None, "") and inserted.get(pk) is not None:
                self._data[pk] = inserted[pk]
                self._get.pop(pk, None)
            if self._relation_write:
                self._auto_relation_insert()
            db.commit()
        except Exception:
            db.rollback()
            raise

        self._exists = True
        self._sync_origin()
        logger.debug(f"Inserted {type(self).__name__} {self.get_key()!r}")
        self.trigger("after_insert")
        return True

    def _update_data(self) -> bool:
        if not self.trigger("before_update"):
            return False

        data = self.get_change_data()
        if not data:
            if self._relation_write:
                self._auto_relation_update()
            return True

        if self._meta.update_time:
            self._write_timestamps(data, [self._meta.update_time])
        if isinstance(self._together, dict):
            for attrs in self._together.values():
                for key in attrs or []:
                    data.pop(key, None)

        allow = self._check_allow_fields()
        where = self.get_where()
        db = self.db(None)
        db.start_trans()
        try:
            if where:
                db.where(where)
            db.strict(self._meta.strict).field(allow).update(data)
            if self._relation_write:
                self._auto_relation_update()
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.debug(f"Updated {type(self).__name__} {self.get_key()!r}: {sorted(data)}")
        self.trigger("after_update")
        return True

    def delete(self) -> bool:
        """
        Delete this row (a soft delete when enabled and not forced).

        Returns ``False`` for a row that is not stored or when a
        ``before_delete`` hook cancelled it.
        """
        if not self._exists or self.is_empty() or not self.trigger("before_delete"):
            return False

        force = self._force
        db = self.db(None)
        db.start_trans()
        try:
            if self.uses_soft_delete() and not force:
                self._soft_delete()
            else:
                where = self.get_where()
                if where:
                    db.where(where)
                db.remove_option("soft_delete").delete()
            if self._relation_write:
                self._auto_relation_delete(force)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.debug(f"Deleted {type(self).__name__} {self.get_key()!r}")
        self.trigger("after_delete")
        self._exists = False
        return True

    def refresh(self, relation: bool = False):
        """Reload the row from the database (dropping loaded relations with ``relation``)."""
        if self._exists:
            fresh = self.db().find_or_fail(self.get_key())
            self._data = dict(fresh.get_data())
            self._sync_origin()
            self._get = {}
            if relation:
                self._relation = {}
        return self

    def save_all(self, dataset: List[Any], replace: bool = True):
        """
        Save several rows in one transaction. With ``replace`` a row
        carrying its primary key is updated, others are inserted.
        """
        pk_fields = self._meta.pk_fields()
        cls = type(self)
        result = []
        db = self.db()
        db.start_trans()
        try:
            for data in dataset:
                if isinstance(data, Model):
                    data = data.get_data()
                if replace and pk_fields and all(data.get(field) is not None for field in pk_fields):
                    result.append(cls.update(data, None, None, self._suffix))
                else:
                    result.append(cls.create(data, self._field, self._replace, self._suffix))
            db.commit()
        except Exception:
            db.rollback()
            raise
        return self.to_collection(result)

    # ── Class-level writes ───────────────────────────────────────────

    @classmethod
    def create(cls, data: Dict[str, Any], allow_field: Optional[List[str]] = None,
               replace: bool = False, suffix: str = "") -> "Model":
        """
        Create and persist a new record.

        Usage:
            user = User.create({"name": "Alice", "email": "alice@test.com"})
        """
        model = cls()
        if allow_field:
            model.allow_field(allow_field)
        if suffix:
            model.set_suffix(suffix)
        model.replace(replace).save(data)
        return model

    @classmethod
    def update(cls, data: Dict[str, Any], where: Any = None, allow_field: Optional[List[str]] = None,
               suffix: str = "") -> "Model":
        """
        Update rows matching ``where`` (or the primary key in ``data``).

        Usage:
            User.update({"id": 1, "name": "Bob"})
            User.update({"status": 0}, {"name": "Bob"})
        """
        model = cls()
        if allow_field:
            model.allow_field(allow_field)
        if where:
            model.set_update_where(where)
        if suffix:
            model.set_suffix(suffix)
        model.exists(True).save(data)
        return model

    @classmethod
    def destroy(cls, data: Any, force: bool = False) -> bool:
        """
        Delete rows one by one (so events and soft delete apply).

        ``data`` is a primary key, a list of them, a where dict or a
        callable receiving the query.
        """
        if data is None or data is False or (isinstance(data, (str, list, tuple, dict)) and not data):
            return False

        query = cls().db()
        if isinstance(data, dict):
            query.where(data)
            data = None
        elif callable(data):
            query.call_modifier(data, query)
            data = None

        for model in query.select(data):
            model.force(force).delete()
        return True


def _class_attr(cls: type, name: str) -> Any:
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass.__dict__[name]
    return None
