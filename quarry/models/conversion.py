"""
Quarry Model Conversion — dict / JSON projection of a model.

``to_dict()`` walks the stored data and the loaded relations:

1. ``visible`` is an allow list; when it names a plain attribute,
   everything not listed is dropped and ``hidden`` is ignored.
2. ``hidden`` drops attributes.
3. A dotted name (``"profile.phone"``) scopes the rule to the nested
   relation's own projection instead.
4. ``mapping`` renames output keys.
5. ``append`` adds computed attributes (accessors, relations or
   ``"relation.attr"`` pairs).
6. ``convert_name_to_camel`` rewrites keys to camelCase last.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from ..faults import RelationFault
from ..utils import camel, import_string

__all__ = ["Conversion"]


def _split_rules(names: List[str]) -> Tuple[Dict[str, Any], bool]:
    """``["a", "b.c"]`` -> ``({"a": True, "b": ["c"]}, has_plain)``."""
    rules: Dict[str, Any] = {}
    plain = False
    for name in names:
        if "." in name:
            relation, attr = name.split(".", 1)
            current = rules.get(relation)
            if current is not True:
                rules.setdefault(relation, []).append(attr)
        else:
            rules[name] = True
            plain = True
    return rules, plain


def _jsonable(value: Any) -> Any:
    if isinstance(value, SimpleNamespace):
        return vars(value)
    return str(value)


class Conversion:
    """Projection and serialization for ``Model``."""

    def visible(self, visible: List[str]):
        self._visible = list(visible)
        return self

    def hidden(self, hidden: List[str]):
        self._hidden = list(hidden)
        return self

    def append(self, append: Any):
        self._append = list(append) if not isinstance(append, dict) else dict(append)
        return self

    def mapping(self, mapping: Dict[str, str]):
        self._mapping = dict(mapping)
        return self

    def scene(self, scene: str):
        """Apply the named ``Meta.scene`` entry (``visible`` / ``hidden`` / ``append``)."""
        rules = self._meta.scene.get(scene)
        if rules:
            for name in ("append", "hidden", "visible"):
                if name in rules:
                    getattr(self, name)(rules[name])
        return self

    def convert_name_to_camel(self, to_camel: bool = True):
        self._convert_name_to_camel = to_camel
        return self

    def append_relation_attr(self, relation: str, append: Any):
        """Copy attributes of a loaded one-to-one relation onto this model."""
        model = self.get_attr(relation)
        if model is None or not hasattr(model, "get_attr"):
            return self
        items = append.items() if isinstance(append, dict) else ((attr, attr) for attr in append)
        for key, attr in items:
            if key in self._data:
                raise RelationFault(f"bind attr has exists:{key}")
            self._data[key] = model.get_attr(attr)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """The projected attributes (and loaded relations) as a plain dict."""
        visible, has_visible = _split_rules(self._visible)
        hidden, _ = _split_rules(self._hidden)

        item: Dict[str, Any] = {}
        keys = list(self._data) + [name for name in self._relation if name not in self._data]
        for key in keys:
            value = self._relation[key] if key in self._relation else None
            if _is_projectable(value):
                if isinstance(visible.get(key), list):
                    value.visible(visible[key])
                elif isinstance(hidden.get(key), list):
                    value.hidden(hidden[key])
                if hidden.get(key) is not True and (not has_visible or key in visible):
                    item[key] = value.to_dict()
            elif key in visible:
                item[key] = self.get_attr(key)
            elif key not in hidden and not has_visible:
                item[key] = self.get_attr(key)

            if key in self._mapping and key in item:
                item[self._mapping[key]] = item.pop(key)

        append = self._append
        if isinstance(append, dict):
            for relation, attrs in append.items():
                self._append_relation_to_dict(item, relation, list(attrs))
        else:
            for name in append:
                if "." in name:
                    relation, attr = name.split(".", 1)
                    self._append_relation_to_dict(item, relation, [attr])
                else:
                    value = self.get_attr(name)
                    item[name] = value.to_dict() if _is_projectable(value) else value

        if self._convert_name_to_camel:
            item = {camel(key): value for key, value in item.items()}
        return item

    def _append_relation_to_dict(self, item: Dict[str, Any], relation: str, attrs: List[str]) -> None:
        value = self.get_attr(relation)
        item[relation] = value.append(attrs).to_dict() if _is_projectable(value) else None

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("ensure_ascii", False)
        kwargs.setdefault("default", _jsonable)
        return json.dumps(self.to_dict(), **kwargs)

    def to_collection(self, models: Optional[List[Any]] = None, collection_class: Any = None):
        """Wrap ``models`` in the model's collection class."""
        from .collection import Collection

        klass = collection_class or self._meta.collection_class or Collection
        if isinstance(klass, str):
            klass = import_string(klass)
        return klass(models or [])

    def __str__(self) -> str:
        return self.to_json()


def _is_projectable(value: Any) -> bool:
    return value is not None and hasattr(value, "to_dict") and hasattr(value, "visible")
