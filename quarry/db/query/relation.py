"""
Quarry Model Relation Query — model hydration and relation loading.

When a query is bound to a model (``set_model``) its results come back
as model instances inside a ``Collection``; ``with_`` / ``with_join``
eager load relations, ``with_count`` and friends add relation
aggregates, ``has`` / ``has_where`` filter parents by their relations.

Usage:
    User.query().with_(["profile", "posts.comments"]).select()
    User.query().with_join("profile").where("profile.city", "Oslo").select()
    User.query().with_count("posts").select()
    User.has("posts", ">", 3).select()
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ...faults import MethodNotFoundFault

__all__ = ["ModelRelationQuery", "parse_relations"]

RelationSpec = Tuple[List[str], Optional[Callable[..., Any]]]


def parse_relations(relations: Any) -> Dict[str, RelationSpec]:
    """
    Normalize relation arguments to ``{name: (sub_relations, closure)}``.

    Accepts ``"a,b.c"``, ``["a", "b.c"]``, ``{"a": closure}`` and
    ``{"a": ["sub1", "sub2"]}``. Dotted names nest: ``"b.c"`` loads
    ``b`` and, on each ``b``, ``c``.
    """
    if not relations:
        return {}
    if isinstance(relations, str):
        relations = [item.strip() for item in relations.split(",") if item.strip()]

    items: List[Tuple[str, Any]]
    if isinstance(relations, dict):
        items = list(relations.items())
    else:
        items = [(name, None) for name in relations]

    parsed: Dict[str, RelationSpec] = {}
    for name, value in items:
        subs: List[str] = []
        closure = None
        if isinstance(value, (list, tuple)):
            subs = list(value)
        elif isinstance(value, str):
            subs = [value]
        elif value is not None:
            closure = value

        if "." in name:
            name, sub = name.split(".", 1)
            subs.append(sub)

        current_subs, current_closure = parsed.get(name, ([], None))
        for sub in subs:
            if sub not in current_subs:
                current_subs.append(sub)
        parsed[name] = (current_subs, closure or current_closure)
    return parsed


class ModelRelationQuery:
    """Model-aware result handling for ``BaseQuery``."""

    model: Any
    options: Dict[str, Any]

    def set_model(self, model: Any) -> Any:
        self.model = model
        return self

    def get_model(self) -> Any:
        return self.model

    def scope(self, scope: Any, *args: Any) -> Any:
        """
        Apply named model scopes (``scope_<name>(query, *args)``) or a
        callable / ``QueryModifier``.
        """
        if not isinstance(scope, (str, list, tuple)):
            self.call_modifier(scope, self, *args)
            return self
        if self.model is None:
            return self

        names = [item.strip() for item in scope.split(",")] if isinstance(scope, str) else list(scope)
        for name in names:
            if callable(name):
                self.call_modifier(name, self, *args)
                continue
            method = getattr(self.model, f"scope_{name}", None)
            if method is None:
                raise MethodNotFoundFault(type(self.model).__name__, f"scope_{name}")
            method(self, *args)
        return self

    def relation(self, relations: Any) -> Any:
        """Resolve relations lazily (one query per row) after fetching."""
        if relations:
            self.options.setdefault("relation", {}).update(parse_relations(relations))
        return self

    def with_(self, with_: Any) -> Any:
        """Eager load relations with one batched IN query per relation."""
        if with_:
            self.options.setdefault("with", {}).update(parse_relations(with_))
        return self

    def with_cache(self, relation: Any = True, expire: Any = None, tag: Optional[str] = None) -> Any:
        """Cache the eager load queries (all, or per relation name)."""
        if relation is False:
            return self
        if relation is True or isinstance(relation, int):
            if isinstance(relation, int) and not isinstance(relation, bool):
                expire = relation
            self.options["with_cache"] = (True, expire, tag)
        else:
            names = relation if isinstance(relation, dict) else {name: expire for name in relation}
            self.options["with_cache"] = {name: (True, ttl, tag) for name, ttl in names.items()}
        return self

    def with_join(self, with_: Any, join_type: str = "") -> Any:
        """
        Eager load one-to-one relations in the same SELECT through a JOIN.

        Values may be a closure or a field list: ``with_join({"profile":
        ["email", "city"]})``. Relations that are not one-to-one fall
        back to ``with_``.
        """
        if not with_ or self.model is None:
            return self
        if isinstance(with_, str):
            with_ = [item.strip() for item in with_.split(",")]
        items = with_.items() if isinstance(with_, dict) else [(name, None) for name in with_]

        first = True
        joined: Dict[str, RelationSpec] = dict(self.options.get("with_join") or {})
        for name, value in items:
            closure = None
            field: Any = True
            if isinstance(value, (list, tuple, str)):
                field = value
            elif value is not None:
                closure = value

            if self.model.eagerly(self, name, field, join_type, closure, first):
                first = False
                joined[name] = ([], closure)
            else:
                self.with_({name: value})

        self.via()
        self.options["with_join"] = joined
        return self

    def with_aggregate(self, relations: Any, aggregate: str = "count", field: str = "*",
                       sub_query: bool = True) -> Any:
        """
        Add a relation aggregate column named ``<relation>_<aggregate>``.

        ``sub_query`` renders it as a correlated sub-query in the SELECT;
        otherwise one aggregate query runs per fetched row.
        """
        if self.model is None:
            return self
        if not sub_query:
            self.options.setdefault("with_aggregate", []).append((relations, aggregate, field))
            return self
        if not self.options.get("field"):
            self.field("*")
        self.model.relation_aggregate(self, relations, aggregate, field, True)
        return self

    def with_count(self, relations: Any, sub_query: bool = True) -> Any:
        return self.with_aggregate(relations, "count", "*", sub_query)

    def with_sum(self, relations: Any, field: str, sub_query: bool = True) -> Any:
        return self.with_aggregate(relations, "sum", field, sub_query)

    def with_max(self, relations: Any, field: str, sub_query: bool = True) -> Any:
        return self.with_aggregate(relations, "max", field, sub_query)

    def with_min(self, relations: Any, field: str, sub_query: bool = True) -> Any:
        return self.with_aggregate(relations, "min", field, sub_query)

    def with_avg(self, relations: Any, field: str, sub_query: bool = True) -> Any:
        return self.with_aggregate(relations, "avg", field, sub_query)

    def has(self, relation: str, operator: str = ">=", count: int = 1, id: str = "*",
            join_type: str = "") -> Any:
        """Parents having at least ``count`` related rows."""
        return self.model.related(relation).has(operator, count, id, join_type, self)

    def has_where(self, relation: str, where: Any = None, fields: Any = None,
                  join_type: str = "") -> Any:
        """Parents whose related rows match ``where``."""
        return self.model.related(relation).has_where(where or {}, fields, join_type, self)

    def bind_attr(self, relation: str, attrs: Union[List[str], Dict[str, str]]) -> Any:
        """Lift attributes of a loaded one-to-one relation onto each parent."""
        self.options.setdefault("bind_attr", {})[relation] = attrs
        return self

    def with_relation_attr(self, relation: str, attrs: Dict[str, Callable]) -> Any:
        """Attribute transforms for a relation's models."""
        self.options.setdefault("with_relation_attr", {})[relation] = attrs
        return self

    # ── Hydration ────────────────────────────────────────────────────

    def _result_set_to_model_collection(self, result_set: List[Dict[str, Any]]) -> Any:
        if not result_set:
            return self.model.to_collection([])

        models = [self._result_to_model(result, True) for result in result_set]
        options = self.options
        relation_attr = options.get("with_relation_attr") or {}
        cache = options.get("with_cache", False)
        if options.get("with"):
            models[0].with_query_set(models, options["with"], relation_attr, False, cache)
        if options.get("with_join"):
            models[0].with_query_set(models, options["with_join"], relation_attr, True, cache)
        for model in models:
            self._after_relations(model)
        return self.model.to_collection(models)

    def _result_to_model(self, result: Dict[str, Any], result_set: bool = False) -> Any:
        options = self.options
        if options.get("json"):
            self._json_result(result, options["json"], bool(options.get("json_assoc")))

        where = None if result_set else (options.get("where") or {}).get("AND")
        model = self.model.new_instance(result, where, options)

        if options.get("with_attr"):
            model.with_attribute(options["with_attr"])
        if options.get("visible"):
            model.visible(options["visible"])
        elif options.get("hidden"):
            model.hidden(options["hidden"])
        if options.get("append"):
            model.append(options["append"])
        if options.get("relation"):
            model.relation_query(options["relation"], options.get("with_relation_attr") or {})

        if not result_set:
            relation_attr = options.get("with_relation_attr") or {}
            cache = options.get("with_cache", False)
            if options.get("with"):
                model.with_query(model, options["with"], relation_attr, False, cache)
            if options.get("with_join"):
                model.with_query(model, options["with_join"], relation_attr, True, cache)
            self._after_relations(model)
        return model

    def _after_relations(self, model: Any) -> None:
        for relations, aggregate, field in self.options.get("with_aggregate") or []:
            model.relation_aggregate(self, relations, aggregate, field, False)
        for relation, attrs in (self.options.get("bind_attr") or {}).items():
            model.bind_attr(relation, attrs)
