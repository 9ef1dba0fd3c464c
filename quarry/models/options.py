"""
Quarry Model Options — parsed from the inner ``Meta`` class.

Usage:
    class User(Model):
        class Meta:
            table = "users"
            pk = "id"
            casts = {"score": "float:2", "tags": "json"}
            hidden = ["password"]
            auto_write_timestamp = "datetime"
            soft_delete = True
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Union

__all__ = ["Options", "OPTION_NAMES"]

# Meta attribute -> default
OPTION_NAMES: Dict[str, Any] = {
    "name": "",
    "table": "",
    "pk": "id",
    "connection": "",
    "suffix": "",
    "schema": {},
    "field": [],
    "casts": {},
    "disuse": [],
    "readonly": [],
    "json": [],
    "json_type": {},
    "json_assoc": False,
    "visible": [],
    "hidden": [],
    "append": [],
    "mapping": {},
    "scene": {},
    "auto_write_timestamp": None,
    "create_time": "create_time",
    "update_time": "update_time",
    "date_format": "%Y-%m-%d %H:%M:%S",
    "soft_delete": False,
    "delete_time": "delete_time",
    "default_soft_delete": None,
    "global_scope": [],
    "strict": False,
    "convert_name_to_camel": False,
    "collection_class": None,
    "abstract": False,
}


class Options:
    """
    Parsed model options from the inner Meta class.

    Attributes:
        name: Model name; the table is ``prefix + snake(name)`` unless
            ``table`` is given
        table: Full table name
        pk: Primary key column (or list of columns)
        connection: Name of the ``DbManager`` connection to use
        suffix: Table name suffix (sharded tables)
        schema: Declared ``{column: type}``; skips introspection
        field: Columns allowed in writes
        casts: ``{attribute: cast}`` read / write type transforms
        disuse: Columns dropped from loaded data
        readonly: Columns never sent in UPDATE
        json / json_type / json_assoc: JSON columns and their decoding
        visible / hidden / append / mapping / scene: ``to_dict`` projection
        auto_write_timestamp: ``True`` (detect), ``"int"``, ``"datetime"``,
            ``"date"``, ``"timestamp"`` or falsy
        create_time / update_time: Timestamp column names (falsy disables)
        date_format: strftime format of read timestamps (``False`` = raw)
        soft_delete / delete_time / default_soft_delete: Soft delete rule
        global_scope: Scope names applied to every query
        strict: Reject unknown columns in write data (``False`` drops them)
        convert_name_to_camel: camelCase keys in ``to_dict``
        collection_class: Result set class (default ``Collection``)
        relations: ``{name: relationship}`` built from the class body
    """

    __slots__ = tuple(OPTION_NAMES) + ("relations", "model_name")

    def __init__(self, model_name: str, meta: Optional[type] = None, parent: Optional["Options"] = None):
        self.model_name = model_name
        for key, default in OPTION_NAMES.items():
            if meta is not None and hasattr(meta, key):
                value = getattr(meta, key)
            elif parent is not None and key not in ("name", "abstract"):
                value = getattr(parent, key)
            else:
                value = default
            setattr(self, key, copy.copy(value))

        if not self.name:
            self.name = model_name
        self.relations: Dict[str, Any] = dict(parent.relations) if parent is not None else {}

    @property
    def time_fields(self) -> List[str]:
        return [name for name in (self.create_time, self.update_time) if name]

    def pk_fields(self) -> List[str]:
        pk: Union[str, List[str]] = self.pk
        return [pk] if isinstance(pk, str) else list(pk or [])

    def __repr__(self) -> str:
        return f"<Options: {self.table or self.name}>"
