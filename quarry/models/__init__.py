"""
Quarry Model System — active record models over the query builder.

Usage:
    from quarry.models import Model, relationship

    class User(Model):
        class Meta:
            table = "user"
            hidden = ["password"]

        @relationship
        def posts(self):
            return self.has_many("Post")

Public API:
    - Model: Base class for all models
    - relationship: Relation declaration decorator
    - Pivot: Many-to-many intermediate rows
    - Collection: Model result sets
    - ModelRegistry: Per-DbManager model registry
    - Signals: before_insert, after_write, ...
"""

from .base import Model
from .collection import Collection
from .metaclass import MODEL_QUERY_METHODS, ModelMeta
from .options import OPTION_NAMES, Options
from .pivot import Pivot
from .registry import ModelRegistry
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
from .relationship import relationship
from .signals import (
    MODEL_EVENTS,
    Signal,
    after_delete,
    after_insert,
    after_read,
    after_restore,
    after_update,
    after_write,
    before_delete,
    before_insert,
    before_restore,
    before_update,
    before_write,
    class_prepared,
    receiver,
)

__all__ = [
    # Core
    "Model",
    "ModelMeta",
    "Options",
    "OPTION_NAMES",
    "MODEL_QUERY_METHODS",
    "ModelRegistry",
    "Collection",
    "Pivot",
    "relationship",
    # Relations
    "Relation",
    "OneToOne",
    "HasOne",
    "BelongsTo",
    "HasMany",
    "HasManyThrough",
    "HasOneThrough",
    "BelongsToMany",
    "MorphOne",
    "MorphMany",
    "MorphTo",
    "MorphToMany",
    # Signals
    "Signal",
    "MODEL_EVENTS",
    "before_insert",
    "after_insert",
    "before_update",
    "after_update",
    "before_write",
    "after_write",
    "before_delete",
    "after_delete",
    "before_restore",
    "after_restore",
    "after_read",
    "class_prepared",
    "receiver",
]
