"""
Quarry MorphTo — the owner of a polymorphic row.

The owner class is read per row from ``morph_type`` (mapped through the
relation's ``alias`` dict, then the registry's morph map or class
names); eager loading issues one query per owner type.

Usage:
    class Comment(Model):
        @relationship
        def commentable(self):
            return self.morph_to()

    Comment.query().with_("commentable").select()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from ...faults import RelationFault
from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model

logger = logging.getLogger("quarry.models.relation")

__all__ = ["MorphTo"]


class MorphTo(Relation):
    """A polymorphic belongs-to; the related class varies per row."""

    def __init__(self, parent: "Model", morph_type: str, morph_key: str,
                 alias: Optional[Dict[str, Any]] = None, relation: str = ""):
        self._parent = parent
        self._self_relation = False
        self.model = None
        self.query = None
        self.name = ""
        self.morph_type = morph_type
        self.morph_key = morph_key
        self.foreign_key = morph_key
        self.local_key = ""
        self.alias = alias or {}
        self.relation = relation
        self._base_applied = False
        self._with_limit = 0
        self._with_field: Any = None
        self._without_field: Any = None
        self._default: Any = None
        self._with_attr: Optional[Dict[str, Any]] = None

    def _morph_model(self, morph: Any) -> Type["Model"]:
        """The model class stored as ``morph``."""
        target = self.alias.get(morph, morph)
        if not isinstance(target, str):
            return target
        registry = self.parent._registry
        if registry is None:
            raise RelationFault(f"cannot resolve morph type '{morph}'")
        return registry.resolve(target)

    def get_query(self):
        if self.query is None:
            morph = key_of(self.parent, self.morph_type)
            if not morph:
                raise RelationFault(f"morph type missing: {self.morph_type}")
            self.model = self._morph_model(morph)
            self.query = self.model().db()
        if not self._base_applied:
            self._base_applied = True
            self.query.where(self.model._meta.pk, key_of(self.parent, self.morph_key))
        return self.query

    def with_attr(self, attrs: Dict[str, Any]) -> "MorphTo":
        self._with_attr = attrs
        return self

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if not key_of(self.parent, self.morph_type) or key_of(self.parent, self.morph_key) is None:
            return None
        query = self.get_query()
        if closure is not None:
            query.call_modifier(closure, query)
        if self._with_attr:
            query.with_attr(self._with_attr)
        model = query.with_(subs or []).find()
        if model is not None:
            model.set_parent(self.parent)
        return model

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        ids_by_type: Dict[Any, List[Any]] = {}
        for model in models:
            morph = key_of(model, self.morph_type)
            id = key_of(model, self.morph_key)
            if morph and id is not None:
                ids_by_type.setdefault(morph, []).append(id)

        found: Dict[Any, Dict[Any, "Model"]] = {}
        for morph, ids in ids_by_type.items():
            model_cls = self._morph_model(morph)
            query = model_cls().db()
            if closure is not None:
                query.call_modifier(closure, query)
            if cache:
                query.cache(*cache)
            if self._with_attr:
                query.with_attr(self._with_attr)
            pk = model_cls._meta.pk
            rows = query.where_in(pk, self._unique(ids)).with_(subs).select()
            found[morph] = {key_of(row, pk): row for row in rows}
            logger.debug(f"Eager loaded {len(rows)} {model_cls.__name__} rows for '{relation}'")

        for model in models:
            value = found.get(key_of(model, self.morph_type), {}).get(key_of(model, self.morph_key))
            if value is not None:
                value.set_parent(model)
            model.set_relation(relation, value)

    # ── Writes ───────────────────────────────────────────────────────

    def associate(self, model: "Model", type: str = "") -> "Model":
        """Point the parent at ``model`` (the parent is not saved)."""
        parent = self.parent
        registry = parent._registry
        if not type:
            type = registry.get_morph_alias(model.__class__) if registry is not None else model.__class__.__name__
        parent.set(self.morph_key, model.get_key())
        parent.set(self.morph_type, type)
        if self.relation:
            parent.set_relation(self.relation, model)
        return parent

    def dissociate(self) -> "Model":
        parent = self.parent
        parent.set(self.morph_key, None)
        parent.set(self.morph_type, None)
        if self.relation:
            parent.set_relation(self.relation, None)
        return parent
