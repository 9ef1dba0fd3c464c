"""
Quarry Model Relationships — declaration, loading and relation writes.

Relations are declared with the ``relationship`` decorator on a method
returning a ``Relation``; the metaclass collects them into
``Model._meta.relations`` so every dispatch (lazy access, ``with_``,
``with_join``, aggregates, ``has``) goes through that table.

Usage:
    class User(Model):
        @relationship
        def profile(self):
            return self.has_one(Profile)

        @relationship
        def posts(self):
            return self.has_many("Post").order("id", "desc")

    user.profile                   # lazy: one query
    User.query().with_("posts").select()
    user.related("posts").where("status", 1).select()
"""

from __future__ import annotations

import functools
import logging
import weakref
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type, Union

from ..faults import MethodNotFoundFault, RelationFault
from ..utils import class_basename, snake
from .relation import (
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasManyThrough,
    HasOne,
    HasOneThrough,
    MorphMany,
    MorphOne,
    MorphTo,
    MorphToMany,
    OneToOne,
    Relation,
)

if TYPE_CHECKING:
    from .base import Model

logger = logging.getLogger("quarry.models.relationship")

__all__ = ["relationship", "RelationShip"]


class relationship:
    """
    Declare a model relation.

    Reading the attribute on an instance returns the loaded relation
    value (resolved lazily on first access); assigning stores a value
    without touching the database. On the class it returns the
    descriptor itself.
    """

    def __init__(self, func: Callable[["Model"], Relation]):
        self.func = func
        self.name = func.__name__
        functools.update_wrapper(self, func)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.get_attr(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.set_relation(self.name, value)

    def __repr__(self) -> str:
        return f"<relationship {self.name}>"


def _normalize_aggregates(relations: Any) -> Dict[str, Any]:
    if isinstance(relations, str):
        return {name.strip(): None for name in relations.split(",") if name.strip()}
    if isinstance(relations, dict):
        return dict(relations)
    return {name: None for name in relations}


class RelationShip:
    """Relation support for ``Model``."""

    _relation: Dict[str, Any]

    # ── Parent ───────────────────────────────────────────────────────

    def set_parent(self, model: Optional["Model"]):
        """Remember the model this one was loaded through (weakly)."""
        self._parent = weakref.ref(model) if model is not None else None
        return self

    def get_parent(self) -> Optional["Model"]:
        return self._parent() if self._parent is not None else None

    # ── Loaded values ────────────────────────────────────────────────

    def get_relation(self, name: Optional[str] = None, auto: bool = False) -> Any:
        """
        Loaded relation values, or one of them. With ``auto`` a relation
        that is not loaded yet is resolved.
        """
        if name is None:
            return self._relation
        if name in self._relation:
            return self._relation[name]
        if auto:
            relation = self._relation_method(name)
            if relation is not None:
                value = self._get_relation_value(relation)
                self._relation[name] = value
                return value
        return None

    def set_relation(self, name: str, value: Any, data: Optional[Dict[str, Any]] = None):
        """Store a loaded relation value (through a ``set_<name>_attr`` mutator)."""
        mutator = getattr(type(self), f"set_{name}_attr", None)
        if mutator is not None:
            value = getattr(self, f"set_{name}_attr")(value, {**self._data, **(data or {})})
        self._relation[name] = value
        self._get.pop(name, None)
        return self

    def related(self, name: str) -> Relation:
        """
        A fresh ``Relation`` object for relation ``name`` (declared with
        ``relationship`` or added as a registry macro).

        Raises ``MethodNotFoundFault`` for an unknown name.
        """
        descriptor = self._meta.relations.get(name)
        if descriptor is not None:
            factory = descriptor.func
        else:
            registry = self._registry
            factory = registry.get_macro(type(self), name) if registry is not None else None
            if factory is None:
                raise MethodNotFoundFault(type(self).__name__, name)

        previous = self._relation_name
        self._relation_name = name
        try:
            relation = factory(self)
        finally:
            self._relation_name = previous

        if not isinstance(relation, Relation):
            raise RelationFault(f"not a relation: {type(self).__name__}->{name}")
        relation.set_name(name)
        return relation

    def has_relation(self, name: str) -> bool:
        return self._relation_method(name) is not None

    def _relation_method(self, name: str) -> Optional[Relation]:
        if name in self._meta.relations:
            return self.related(name)
        registry = self._registry
        if registry is not None and registry.get_macro(type(self), name) is not None:
            try:
                return self.related(name)
            except (RelationFault, TypeError):
                return None
        return None

    def _get_relation_value(self, relation: Relation) -> Any:
        parent = self.get_parent()
        if parent is not None and not relation.is_self_relation() and type(parent) is relation.model:
            return parent
        return relation.get_relation()

    # ── Declaration helpers ──────────────────────────────────────────

    def _resolve_model(self, model: Union[str, Type["Model"]]) -> Type["Model"]:
        if not isinstance(model, str):
            return model
        if self._registry is None:
            raise RelationFault(f"cannot resolve model '{model}': {type(self).__name__} is not registered")
        return self._registry.resolve(model)

    @staticmethod
    def _foreign_key_of(name: str) -> str:
        return f"{snake(class_basename(name))}_id"

    def _default_morph(self) -> str:
        if not self._relation_name:
            raise RelationFault("morph name required outside a relationship declaration")
        return snake(self._relation_name)

    def _morph_columns(self, morph: Any) -> List[str]:
        if isinstance(morph, (list, tuple)):
            return [morph[0], morph[1]]
        morph = morph or self._default_morph()
        return [f"{morph}_type", f"{morph}_id"]

    def _morph_type_of(self, model_cls: type) -> str:
        if self._registry is not None:
            return self._registry.get_morph_alias(model_cls)
        return model_cls.__name__

    # ── Relation factories ───────────────────────────────────────────

    def has_one(self, model: Any, foreign_key: str = "", local_key: str = "") -> HasOne:
        """``related.foreign_key = self.local_key``, at most one row."""
        model = self._resolve_model(model)
        foreign_key = foreign_key or self._foreign_key_of(self._meta.name)
        local_key = local_key or self.get_pk()
        return HasOne(self, model, foreign_key, local_key)

    def belongs_to(self, model: Any, foreign_key: str = "", local_key: str = "") -> BelongsTo:
        """``self.foreign_key = related.local_key``."""
        model = self._resolve_model(model)
        foreign_key = foreign_key or self._foreign_key_of(model._meta.name)
        local_key = local_key or model._meta.pk
        return BelongsTo(self, model, foreign_key, local_key, self._relation_name)

    def has_many(self, model: Any, foreign_key: str = "", local_key: str = "") -> HasMany:
        model = self._resolve_model(model)
        foreign_key = foreign_key or self._foreign_key_of(self._meta.name)
        local_key = local_key or self.get_pk()
        return HasMany(self, model, foreign_key, local_key)

    def has_many_through(self, model: Any, through: Any, foreign_key: str = "", through_key: str = "",
                         local_key: str = "", through_pk: str = "") -> HasManyThrough:
        """
        Rows of ``model`` reached through ``through``:
        ``through.foreign_key = self.local_key`` and
        ``model.through_key = through.through_pk``.
        """
        model = self._resolve_model(model)
        through = self._resolve_model(through)
        foreign_key = foreign_key or self._foreign_key_of(self._meta.name)
        through_key = through_key or self._foreign_key_of(through._meta.name)
        local_key = local_key or self.get_pk()
        through_pk = through_pk or through._meta.pk
        return HasManyThrough(self, model, through, foreign_key, through_key, local_key, through_pk)

    def has_one_through(self, model: Any, through: Any, foreign_key: str = "", through_key: str = "",
                        local_key: str = "", through_pk: str = "") -> HasOneThrough:
        model = self._resolve_model(model)
        through = self._resolve_model(through)
        foreign_key = foreign_key or self._foreign_key_of(self._meta.name)
        through_key = through_key or self._foreign_key_of(through._meta.name)
        local_key = local_key or self.get_pk()
        through_pk = through_pk or through._meta.pk
        return HasOneThrough(self, model, through, foreign_key, through_key, local_key, through_pk)

    def belongs_to_many(self, model: Any, middle: Any = "", foreign_key: str = "",
                        local_key: str = "") -> BelongsToMany:
        """
        Many-to-many through the ``middle`` table (or ``Pivot`` subclass):
        ``middle.foreign_key`` points at ``model`` and ``middle.local_key``
        at this model.
        """
        model = self._resolve_model(model)
        name = snake(class_basename(model._meta.name))
        middle = middle or f"{snake(self._meta.name)}_{name}"
        foreign_key = foreign_key or f"{name}_id"
        local_key = local_key or self._foreign_key_of(self._meta.name)
        return BelongsToMany(self, model, middle, foreign_key, local_key)

    def morph_one(self, model: Any, morph: Any = None, type: str = "") -> MorphOne:
        """
        Polymorphic one-to-one: ``morph`` is the column prefix
        (``"imageable"`` -> ``imageable_type`` / ``imageable_id``) or a
        ``[type_column, id_column]`` pair.
        """
        model = self._resolve_model(model)
        morph_type, foreign_key = self._morph_columns(morph)
        type = type or self._morph_type_of(self.__class__)
        return MorphOne(self, model, foreign_key, morph_type, type)

    def morph_many(self, model: Any, morph: Any = None, type: str = "") -> MorphMany:
        model = self._resolve_model(model)
        morph_type, foreign_key = self._morph_columns(morph)
        type = type or self._morph_type_of(self.__class__)
        return MorphMany(self, model, foreign_key, morph_type, type)

    def morph_to(self, morph: Any = None, alias: Optional[Dict[str, Any]] = None) -> MorphTo:
        """The owner of a polymorphic row, resolved per row from its type column."""
        morph_type, morph_key = self._morph_columns(morph)
        return MorphTo(self, morph_type, morph_key, alias or {}, self._relation_name)

    def morph_to_many(self, model: Any, middle: str, morph: Any = None,
                      local_key: str = "") -> MorphToMany:
        """Polymorphic many-to-many through ``middle``."""
        model = self._resolve_model(model)
        morph_type, morph_key = self._morph_columns(morph)
        local_key = local_key or self._foreign_key_of(model._meta.name)
        type = self._morph_type_of(self.__class__)
        return MorphToMany(self, model, middle, morph_type, morph_key, local_key, type)

    # ── Loading ──────────────────────────────────────────────────────

    def relation_query(self, relations: Dict[str, Any], relation_attr: Optional[Dict[str, Any]] = None) -> None:
        """Resolve ``relations`` for this model one by one."""
        for name, (subs, closure) in relations.items():
            relation = self.related(name)
            if relation_attr and name in relation_attr:
                relation.with_attr(relation_attr[name])
            self._relation[name] = relation.get_relation(subs, closure)
            self._get.pop(name, None)

    def with_query_set(self, models: List["Model"], relations: Dict[str, Any],
                       relation_attr: Optional[Dict[str, Any]] = None, join: bool = False,
                       cache: Any = False) -> None:
        """Eager load ``relations`` onto every model of a result set."""
        for name, (subs, closure) in relations.items():
            relation = self.related(name)
            if relation_attr and name in relation_attr:
                relation.with_attr(relation_attr[name])
            relation.with_query_set(models, name, subs, closure, self._relation_cache(cache, name), join)

    def with_query(self, result: "Model", relations: Dict[str, Any],
                   relation_attr: Optional[Dict[str, Any]] = None, join: bool = False,
                   cache: Any = False) -> None:
        """Eager load ``relations`` onto a single model."""
        for name, (subs, closure) in relations.items():
            relation = self.related(name)
            if relation_attr and name in relation_attr:
                relation.with_attr(relation_attr[name])
            relation.with_query(result, name, subs, closure, self._relation_cache(cache, name), join)

    @staticmethod
    def _relation_cache(cache: Any, name: str) -> Any:
        if isinstance(cache, dict):
            return cache.get(name)
        if isinstance(cache, tuple):
            return cache
        return None

    def eagerly(self, query: Any, name: str, field: Any, join_type: str = "",
                closure: Any = None, first: bool = False) -> bool:
        """
        Add a JOIN for one-to-one relation ``name`` to ``query``.

        Returns ``False`` for relations that cannot be JOIN loaded.
        """
        relation = self.related(name)
        if not isinstance(relation, OneToOne):
            return False
        relation.eagerly(query, name, field, join_type, closure, first)
        return True

    def relation_aggregate(self, query: Any, relations: Any, aggregate: str = "sum",
                           field: str = "*", use_subquery: bool = True) -> None:
        """
        Add ``<relation>_<aggregate>`` values.

        ``relations`` maps names to ``None``, a closure / ``QueryModifier``,
        an alias string or a ``(closure, alias)`` pair.
        """
        for name, spec in _normalize_aggregates(relations).items():
            closure = None
            alias = None
            if isinstance(spec, tuple):
                closure, alias = spec
            elif isinstance(spec, str):
                alias = spec
            elif spec is not None:
                closure = spec
            alias = alias or f"{snake(name)}_{aggregate.lower()}"

            relation = self.related(name)
            if use_subquery:
                sql = relation.get_relation_aggregate_query(closure, aggregate, field)
                query.field({f"({sql})": alias})
            else:
                value = relation.get_relation_aggregate(self, closure, aggregate, field)
                self.set(alias, value)

    def bind_attr(self, relation: str, attrs: Union[List[str], Dict[str, str]]):
        """
        Copy attributes of loaded one-to-one relation ``relation`` onto
        this model: ``bind_attr("profile", ["email"])`` or
        ``bind_attr("profile", {"nick": "name"})``.
        """
        model = self.get_relation(relation)
        items = attrs.items() if isinstance(attrs, dict) else ((attr, attr) for attr in attrs)
        for key, attr in items:
            if self._origin.get(key) is not None:
                raise RelationFault(f"bind attr has exists:{key}")
            self.set(key, model.get_attr(attr) if model is not None else None)
        return self

    # ── Relation writes ──────────────────────────────────────────────

    def together(self, relations: Union[List[str], Dict[str, List[str]]]):
        """Write the named relations along with this model on save / delete."""
        self._together = relations
        self._check_auto_relation_write()
        return self

    def _check_auto_relation_write(self) -> None:
        together = self._together
        items = together.items() if isinstance(together, dict) else ((name, None) for name in together)
        for name, attrs in items:
            if attrs:
                self._relation_write[name] = {key: self._data[key] for key in attrs if key in self._data}
            elif name in self._relation:
                self._relation_write[name] = self._relation[name]
            elif name in self._data:
                self._relation_write[name] = self._data.pop(name)
            else:
                self._relation_write[name] = None

    def _auto_relation_insert(self) -> None:
        for name, value in self._relation_write.items():
            if value is not None:
                self.related(name).save(value)

    def _auto_relation_update(self) -> None:
        for name, value in self._relation_write.items():
            if hasattr(value, "save") and hasattr(value, "get_change_data"):
                value.exists(True).save()
                continue
            model = self.get_relation(name, True)
            if model is not None and hasattr(model, "save") and isinstance(value, dict):
                model.exists(True).save(value)

    def _auto_relation_delete(self, force: bool = False) -> None:
        for name in self._relation_write:
            value = self.get_relation(name, True)
            if value is None:
                continue
            if hasattr(value, "get_change_data"):
                if value.exists():
                    value.force(force).delete()
            else:
                for model in value:
                    model.force(force).delete()

    # ── Relation filters ─────────────────────────────────────────────

    @classmethod
    def has(cls, relation: str, operator: str = ">=", count: int = 1, id: str = "*",
            join_type: str = "", query: Any = None):
        """A query over parents having at least ``count`` related rows."""
        model = cls()
        return model.related(relation).has(operator, count, id, join_type, query)

    @classmethod
    def has_where(cls, relation: str, where: Any = None, fields: Any = None,
                  join_type: str = "", query: Any = None):
        """A query over parents whose related rows match ``where``."""
        model = cls()
        return model.related(relation).has_where(where or {}, fields, join_type, query)
