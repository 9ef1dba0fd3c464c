"""
Quarry Query Options — the normalized intent of one query.

A query accumulates its intent in a plain ``dict`` of options. Fluent
calls only write the keys they touch; ``normalize_options()`` fills in
every missing key with its default right before rendering so builders
never see an unset key.

Sub-query callbacks are accepted either as plain callables or as
``QueryModifier`` objects exposing a single ``apply(query)`` method.

Usage:
    class Active:
        def apply(self, query):
            query.where("status", 1)

    db.table("users").where(Active()).select()
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Protocol, runtime_checkable

__all__ = [
    "QueryModifier",
    "OPTION_DEFAULTS",
    "normalize_options",
    "copy_options",
    "call_modifier",
    "is_modifier",
]


@runtime_checkable
class QueryModifier(Protocol):
    """A named, reusable query customization."""

    def apply(self, query: Any) -> Any:
        ...


def is_modifier(value: Any) -> bool:
    return callable(value) or isinstance(value, QueryModifier)


def call_modifier(modifier: Any, query: Any, *args: Any) -> Any:
    """Run a callback or ``QueryModifier`` against ``query``."""
    if isinstance(modifier, QueryModifier) and not isinstance(modifier, type):
        return modifier.apply(query, *args)
    return modifier(query, *args)


# Every key a builder or connection may read, with its empty value
OPTION_DEFAULTS: Dict[str, Any] = {
    "where": {},
    "data": {},
    "field": [],
    "order": [],
    "join": [],
    "union": {},
    "alias": {},
    "json": [],
    "json_assoc": False,
    "field_type": {},
    "with": {},
    "with_join": {},
    "with_attr": {},
    "with_aggregate": [],
    "visible": [],
    "hidden": [],
    "append": [],
    "filter": [],
    "master": False,
    "lock": False,
    "fetch_sql": False,
    "distinct": False,
    "procedure": False,
    "replace": False,
    "group": "",
    "having": "",
    "limit": "",
    "force": "",
    "comment": "",
    "partition": "",
    "duplicate": "",
    "extra": "",
    "using": "",
    "via": "",
    "sequence": None,
    "soft_delete": None,
    "cache": None,
    "fail": False,
    "allow_empty": False,
}


def normalize_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Fill every missing option key with a private copy of its default."""
    for key, default in OPTION_DEFAULTS.items():
        if key not in options or options[key] is None and default is not None:
            options[key] = copy.copy(default)
    return options


def copy_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy ``options`` so conditions appended to the copy (where buckets
    are lists mutated in place) leave the source untouched.
    """
    copied: Dict[str, Any] = {}
    for key, value in options.items():
        if isinstance(value, dict):
            copied[key] = {name: copy.copy(item) for name, item in value.items()}
        else:
            copied[key] = copy.copy(value)
    return copied
