"""
Quarry BelongsToMany — many-to-many through an intermediate (pivot) table.

``pivot.local_key`` holds the parent's primary key and
``pivot.foreign_key`` the related row's. Loaded related models carry the
matching pivot row as a ``Pivot`` model under ``pivot``.

Usage:
    class User(Model):
        @relationship
        def roles(self):
            return self.belongs_to_many(Role, "user_role")

    user.roles[0].pivot.create_time
    user.related("roles").attach(3, {"remark": "admin"})
    user.related("roles").sync({1: {}, 2: {"remark": "x"}})
    user.related("roles").where_pivot("remark", "x").select()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type, Union

from ...faults import RelationFault
from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model
    from ..pivot import Pivot

logger = logging.getLogger("quarry.models.relation")

__all__ = ["BelongsToMany"]

_PIVOT_PREFIX = "pivot__"


class BelongsToMany(Relation):
    """Many-to-many relation through ``middle``."""

    def __init__(self, parent: "Model", model: Any, middle: Union[str, Type["Pivot"]],
                 foreign_key: str, local_key: str):
        from ..pivot import Pivot

        super().__init__(parent, model)
        self.foreign_key = foreign_key
        self.local_key = local_key
        if isinstance(middle, type):
            self.pivot_class: Type["Pivot"] = middle
            self.middle = ""
        else:
            self.pivot_class = Pivot
            self.middle = middle
        self._pivot_data_name = "pivot"

    def pivot_name(self, name: str) -> "BelongsToMany":
        """Attribute name the pivot model is stored under (default ``pivot``)."""
        self._pivot_data_name = name
        return self

    def _new_pivot(self, data: Optional[Dict[str, Any]] = None) -> "Pivot":
        pivot = self.pivot_class(data, self.parent, self.middle)
        if data:
            pivot.exists(True)
        return pivot

    def _pivot_query(self):
        query = self._new_pivot().db()
        self._pivot_condition(query, "")
        return query

    def _pivot_condition(self, query: Any, prefix: str) -> None:
        """Extra pivot constraint shared by every query touching the pivot table."""

    def _pivot_where(self, parent_key: Any, id: Any) -> Dict[str, Any]:
        return {self.local_key: parent_key, self.foreign_key: id}

    def _pivot_table(self) -> str:
        return self._pivot_query().get_table()

    # ── Query ────────────────────────────────────────────────────────

    def _related_fields(self, table: str) -> List[Any]:
        fields = self.query.get_options("field")
        if not fields:
            return [f"{table}.*"]
        qualified: List[Any] = []
        for field in fields:
            if isinstance(field, str) and "." not in field:
                field = f"{table}.{field}"
            qualified.append(field)
        return qualified

    def _pivot_join_query(self):
        """Related rows joined to the pivot rows, pivot columns as ``pivot__*``."""
        table = self.query.get_table()
        pivot_table = self._pivot_table()
        fields = self._related_fields(table)
        self.query.remove_option("field")
        self.query.field(fields).table_field(True, pivot_table, "pivot", _PIVOT_PREFIX)
        self.query.join({pivot_table: "pivot"}, f"pivot.{self.foreign_key}={table}.{self.model._meta.pk}")
        self._pivot_condition(self.query, "pivot.")
        return self.query

    def _base_query(self) -> None:
        self._pivot_join_query().where(f"pivot.{self.local_key}", self.parent.get_key())
        if self._with_limit:
            self.query.limit(self._with_limit)

    def where_pivot(self, field: str, *args: Any) -> "BelongsToMany":
        """A condition on the pivot table: ``where_pivot("remark", "x")``."""
        self.get_query().where(f"pivot.{field}", *args)
        return self

    def _hydrate_pivot(self, models: Any) -> None:
        for model in models:
            pivot: Dict[str, Any] = {}
            for key in [key for key in model._data if key.startswith(_PIVOT_PREFIX)]:
                pivot[key[len(_PIVOT_PREFIX):]] = model._data.pop(key)
                model._origin.pop(key, None)
            model.set_relation(self._pivot_data_name, self._new_pivot(pivot))

    def select(self, data: Any = None) -> Any:
        models = self.get_query().select(data)
        self._hydrate_pivot(models)
        return models

    def find(self, data: Any = None) -> Any:
        model = self.get_query().find(data)
        if model is not None and model.exists():
            self._hydrate_pivot([model])
        return model

    def paginate(self, list_rows: Any = None, page: int = 1, simple: bool = False,
                 total: Optional[int] = None) -> Any:
        paginator = self.get_query().paginate(list_rows, page, simple, total)
        self._hydrate_pivot(paginator.items)
        return paginator

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if closure is not None:
            self.query.call_modifier(closure, self)
        models = self.get_query().with_(subs or []).select()
        self._hydrate_pivot(models)
        for model in models:
            model.set_parent(self.parent)
        return models

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        pk = self.parent.get_pk()
        keys = self._unique([key_of(model, pk) for model in models])
        groups: Dict[Any, List["Model"]] = {}
        if keys:
            self._prepare_eager(closure, cache)
            rows = self._pivot_join_query().where_in(f"pivot.{self.local_key}", keys).with_(subs).select()
            self._hydrate_pivot(rows)
            for row in rows:
                owner = row.get_relation(self._pivot_data_name).get_data().get(self.local_key)
                groups.setdefault(owner, []).append(row)

        for model in models:
            rows = groups.get(key_of(model, pk), [])
            if self._with_limit:
                rows = rows[:self._with_limit]
            for row in rows:
                row.set_parent(model)
            model.set_relation(relation, self.get_model().to_collection(rows))

    # ── Aggregates ───────────────────────────────────────────────────

    def get_relation_aggregate_query(self, closure: Any, aggregate: str, field: str) -> str:
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        alias = f"{aggregate.lower()}_table"
        parent_table = self.parent.get_table()
        query = self.query.alias(alias).join(
            {self._pivot_table(): "pivot"}, f"pivot.{self.foreign_key}={alias}.{self.model._meta.pk}"
        )
        query.where_column(f"pivot.{self.local_key}", "=", f"{parent_table}.{self.parent.get_pk()}")
        self._pivot_condition(query, "pivot.")
        return self._aggregate(query.fetch_sql(), aggregate, field)

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        value = result.get_key()
        if value is None:
            return 0
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        table = self.query.get_table()
        query = self.query.join(
            {self._pivot_table(): "pivot"}, f"pivot.{self.foreign_key}={table}.{self.model._meta.pk}"
        )
        self._pivot_condition(query, "pivot.")
        return self._aggregate(query.where(f"pivot.{self.local_key}", value), aggregate, field)

    # ── Pivot writes ─────────────────────────────────────────────────

    def _ids_of(self, data: Any) -> List[Any]:
        if isinstance(data, dict):
            model = self.model()
            model.save(data)
            return [model.get_key()]
        if isinstance(data, (list, tuple, set)):
            return [item.get_key() if hasattr(item, "get_key") else item for item in data]
        if hasattr(data, "get_key"):
            return [data.get_key()]
        return [data] if data is not None else []

    def attach(self, data: Any, pivot: Optional[Dict[str, Any]] = None) -> Union["Pivot", List["Pivot"]]:
        """
        Link related rows (ids, models or a dict saved as a new related
        row). An existing link is updated with ``pivot`` attributes.

        Raises ``RelationFault`` when there is nothing to attach.
        """
        ids = [id for id in self._ids_of(data) if id is not None]
        if not ids:
            raise RelationFault("miss relation data")

        parent_key = self.parent.get_key()
        result: List["Pivot"] = []
        for id in ids:
            where = self._pivot_where(parent_key, id)
            row = {**(pivot or {}), **where}
            if self._pivot_query().where(where).count() > 0:
                if pivot:
                    self._pivot_query().where(where).update(dict(pivot))
            else:
                self._new_pivot().save(row)
            result.append(self._new_pivot(row))

        logger.debug(f"Attached {ids} to {type(self.parent).__name__}.{self.name or 'relation'}")
        return result[0] if len(result) == 1 else result

    def attached(self, data: Any) -> Any:
        """The pivot rows linking ``data``, or ``False`` when none exist."""
        ids = self._ids_of(data) if not isinstance(data, dict) else []
        query = self._pivot_query().where(self.local_key, self.parent.get_key())
        rows = query.where_in(self.foreign_key, ids).select()
        return rows if len(rows) else False

    def detach(self, data: Any = None, relation_del: bool = False) -> int:
        """Unlink related rows (all of them when ``data`` is ``None``)."""
        ids = self._ids_of(data) if data is not None else []
        query = self._pivot_query().where(self.local_key, self.parent.get_key())
        if ids:
            query.where_in(self.foreign_key, ids)
        count = query.delete()
        if ids and relation_del:
            self.model.destroy(ids)
        return count

    def sync(self, ids: Union[List[Any], Dict[Any, Dict[str, Any]]],
             detaching: bool = True) -> Dict[str, List[Any]]:
        """
        Make the linked set equal ``ids`` (a list, or ``{id: pivot attrs}``).

        Returns ``{"attached": [...], "detached": [...], "updated": [...]}``.
        """
        changes: Dict[str, List[Any]] = {"attached": [], "detached": [], "updated": []}
        query = self._pivot_query().where(self.local_key, self.parent.get_key())
        current = list(query.column(self.foreign_key))
        records = ids if isinstance(ids, dict) else {id: {} for id in ids}

        detach = [id for id in current if id not in records]
        if detaching and detach:
            self.detach(detach)
            changes["detached"] = detach

        for id, attributes in records.items():
            if id not in current:
                self.attach(id, attributes)
                changes["attached"].append(id)
            elif attributes:
                self.attach(id, attributes)
                changes["updated"].append(id)
        return changes

    def save(self, data: Any, pivot: Optional[Dict[str, Any]] = None):
        return self.attach(data, pivot)

    def save_all(self, dataset: List[Any], pivot: Any = None,
                 same_pivot: bool = False) -> List[Any]:
        """Attach several rows; ``pivot`` is per item unless ``same_pivot``."""
        result = []
        for index, data in enumerate(dataset):
            attrs = pivot if same_pivot or pivot is None else (pivot[index] if index < len(pivot) else None)
            result.append(self.attach(data, attrs))
        return result
