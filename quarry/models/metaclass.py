"""
Quarry Model Metaclass — Meta parsing and relation collection.

Separates the metaclass logic from the Model base class. Registration
is explicit (``db.registry.register(...)``), so the metaclass only
prepares the class: ``_meta`` options inherited from the parent model
and the ``relationship`` table.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .options import Options
from .relation import QUERY_METHODS
from .relationship import relationship

__all__ = ["ModelMeta", "MODEL_QUERY_METHODS"]

# Query methods callable on a model class
MODEL_QUERY_METHODS = QUERY_METHODS | frozenset({
    "relation", "paginate_x", "more", "get_by", "get_field_by", "union",
    "union_all", "join", "left_join", "right_join", "where_week",
    "select_insert", "with_relation_attr", "transaction", "start_trans", "commit", "rollback",
})


class ModelMeta(type):
    """
    Metaclass for Quarry models.

    Handles:
    - Meta class parsing -> Options (inheriting the parent model's options)
    - Relation collection into ``_meta.relations``
    - The ``class_prepared`` signal
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> ModelMeta:
        # Don't process the base Model class itself
        parents = [b for b in bases if isinstance(b, ModelMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        meta_class = namespace.pop("Meta", None)
        parent_options = next((getattr(b, "_meta", None) for b in parents if getattr(b, "_meta", None)), None)

        cls = super().__new__(mcs, name, bases, namespace)

        opts = Options(name, meta_class, parent_options)
        for key, value in namespace.items():
            if isinstance(value, relationship):
                opts.relations[key] = value
        cls._meta = opts

        if not opts.abstract:
            from .signals import class_prepared
            class_prepared.send(cls)

        return cls

    def __getattr__(cls, name: str) -> Any:
        # ``User.where(...)`` starts a fresh query on a new instance
        if name in MODEL_QUERY_METHODS:
            return getattr(cls().db(), name)
        raise AttributeError(f"type object '{cls.__name__}' has no attribute '{name}'")
