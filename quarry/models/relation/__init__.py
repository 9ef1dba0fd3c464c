"""
Quarry Relation Package

- base: ``Relation``, the query proxy every relation kind builds on
- one_to_one: JOIN loadable relations (``HasOne``, ``BelongsTo``)
- has_many / has_many_through / has_one_through
- belongs_to_many: pivot table relations (``Pivot`` rows)
- morph_one / morph_many / morph_to / morph_to_many: polymorphic relations
"""

from .base import QUERY_METHODS, Relation
from .belongs_to import BelongsTo
from .belongs_to_many import BelongsToMany
from .has_many import HasMany
from .has_many_through import HasManyThrough
from .has_one import HasOne
from .has_one_through import HasOneThrough
from .morph_many import MorphMany
from .morph_one import MorphOne
from .morph_to import MorphTo
from .morph_to_many import MorphToMany
from .one_to_one import OneToOne

__all__ = [
    "QUERY_METHODS",
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
]
