"""
Quarry Result Operations — post-processing of fetched rows.

Handles ``*_or_fail`` / ``find_or_empty`` semantics, JSON column
decoding, ``with_attr`` value transforms and visible/hidden projection
for plain (non-model) results.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from ...faults import DataNotFoundFault, ModelNotFoundFault

__all__ = ["ResultOperation"]


def _decode(value: Any, assoc: bool) -> Any:
    if not isinstance(value, (str, bytes, bytearray)):
        return value
    try:
        if assoc:
            return json.loads(value)
        return json.loads(value, object_hook=lambda d: SimpleNamespace(**d))
    except ValueError:
        return value


class ResultOperation:
    """Result handling for ``BaseQuery``."""

    def select_or_fail(self, data: Any = None):
        return self.fail_exception(True).select(data)

    def find_or_fail(self, data: Any = None):
        return self.fail_exception(True).find(data)

    def find_or_empty(self, data: Any = None):
        return self.allow_empty(True).find(data)

    def fail_exception(self, fail: bool = True):
        self.options["fail"] = fail
        return self

    def allow_empty(self, allow_empty: bool = True):
        self.options["allow_empty"] = allow_empty
        return self

    def with_attr(self, name: Any, callback: Optional[Callable] = None):
        """
        Transform a result attribute on read.

        ``name`` may be dotted (``"profile.avatar"``) to reach into a
        JSON column, or a dict of name -> callback.
        """
        attrs = self.options.setdefault("with_attr", {})
        if isinstance(name, dict):
            attrs.update(name)
        else:
            attrs[name] = callback
        return self

    def visible(self, fields: List[str]):
        self.options["visible"] = list(fields)
        return self

    def hidden(self, fields: List[str]):
        self.options["hidden"] = list(fields)
        return self

    def append(self, fields: List[str]):
        self.options["append"] = list(fields)
        return self

    def filter(self, callback: Callable[[Dict[str, Any]], bool]):
        """Keep only fetched rows ``callback`` accepts."""
        self.options.setdefault("filter", []).append(callback)
        return self

    # ── Internals ────────────────────────────────────────────────────

    def _result_to_empty(self) -> Any:
        if self.options.get("fail"):
            self._throw_not_found()
        if self.options.get("allow_empty"):
            return self.model.new_instance() if self.model is not None else {}
        return None

    def _throw_not_found(self) -> None:
        config = self.connection.get_config()
        if self.model is not None:
            name = type(self.model).__name__
            raise ModelNotFoundFault(f"model data not found:{name}", name, config)
        table = self.get_table()
        raise DataNotFoundFault(f"table data not found:{table}", str(table), config)

    def _apply_filters(self, result_set: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for callback in self.options.get("filter") or []:
            result_set = [row for row in result_set if callback(row)]
        return result_set

    def _result_set(self, result_set: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for result in result_set:
            self._result(result)
        return result_set

    def _result(self, result: Dict[str, Any]) -> Dict[str, Any]:
        options = self.options
        if options.get("json"):
            self._json_result(result, options["json"], bool(options.get("json_assoc")))
        if options.get("with_attr"):
            self._get_result_attr(result, options["with_attr"])
        self._filter_result(result)
        return result

    @staticmethod
    def _json_result(result: Dict[str, Any], json_fields: List[str], assoc: bool = False) -> None:
        for name in json_fields:
            if name in result:
                result[name] = _decode(result[name], assoc)

    @staticmethod
    def _get_result_attr(result: Dict[str, Any], with_attr: Dict[str, Callable]) -> None:
        for name, callback in with_attr.items():
            if "." in name:
                key, field = name.split(".", 1)
                nested = result.get(key)
                if isinstance(nested, dict):
                    nested[field] = callback(nested.get(field), result)
                elif nested is not None and hasattr(nested, field):
                    setattr(nested, field, callback(getattr(nested, field), result))
            else:
                result[name] = callback(result.get(name), result)

    def _filter_result(self, result: Dict[str, Any]) -> None:
        visible = self.options.get("visible")
        hidden = self.options.get("hidden")
        if visible:
            for key in [k for k in result if k not in visible]:
                del result[key]
        elif hidden:
            for key in hidden:
                result.pop(key, None)
