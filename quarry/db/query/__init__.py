"""
Quarry Query Package

- base: ``BaseQuery``, the chainable query assembled from capability mixins
- query: ``Query``, joins / views / raw clauses / streaming
- where, timerange, aggregate, result, relation: the mixins
- options: option defaults and the ``QueryModifier`` protocol
- fetch: render terminal calls as SQL (``fetch_sql()``)
- cursor, paginator: result containers
"""

from .base import BaseQuery
from .cursor import Cursor
from .fetch import Fetch
from .options import OPTION_DEFAULTS, QueryModifier, call_modifier, copy_options, normalize_options
from .paginator import Paginator
from .query import Query
from .relation import parse_relations
from .timerange import TIME_RULES, time_rule_range, to_datetime
from .where import UNSET

__all__ = [
    "BaseQuery",
    "Query",
    "Cursor",
    "Fetch",
    "Paginator",
    "QueryModifier",
    "OPTION_DEFAULTS",
    "UNSET",
    "TIME_RULES",
    "call_modifier",
    "copy_options",
    "normalize_options",
    "parse_relations",
    "time_rule_range",
    "to_datetime",
]
