"""
Quarry Model Registry — the models bound to one ``DbManager``.

A registry is an ordinary object owned by the application's
``DbManager`` (``db.registry``). Registering a model binds it to that
manager; the registry also carries the model extension hooks:

- makers: callbacks run on every new model instance
- macros: extra per-model methods (a macro returning a ``Relation``
  behaves like a declared relation)
- the morph map: type names stored in polymorphic relation columns

Usage:
    db.registry.register(User, Post, Comment)
    db.registry.maker(lambda model: model.set_connection("replica"))
    db.registry.macro(User, "latest_post", lambda user: user.has_one(Post).order("id", "desc"))
    db.registry.morph_map({"post": Post, "video": Video})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type, Union

from ..faults import ConfigFault

if TYPE_CHECKING:
    from ..db.manager import DbManager
    from .base import Model

logger = logging.getLogger("quarry.models.registry")

__all__ = ["ModelRegistry"]


class ModelRegistry:
    """Tracks model classes, extension hooks and the database manager."""

    def __init__(self, db: Optional["DbManager"] = None):
        self._db = db
        self._models: Dict[str, Type["Model"]] = {}
        self._makers: List[Callable[["Model"], Any]] = []
        self._macros: Dict[Type["Model"], Dict[str, Callable[..., Any]]] = {}
        self._morph_map: Dict[str, Type["Model"]] = {}

    # ── Database ─────────────────────────────────────────────────────

    def set_db(self, db: "DbManager") -> None:
        self._db = db

    def get_db(self) -> "DbManager":
        if self._db is None:
            raise ConfigFault(
                code="MODEL_REGISTRY_UNBOUND",
                message="model registry has no database manager",
            )
        return self._db

    # ── Models ───────────────────────────────────────────────────────

    def register(self, *models: Type["Model"]) -> None:
        """Bind model classes to this registry."""
        for model_cls in models:
            name = model_cls.__name__
            existing = self._models.get(name)
            if existing is not None and existing is not model_cls:
                logger.warning(f"Model name '{name}' re-registered by {model_cls.__module__}")
            self._models[name] = model_cls
            model_cls._registry = self

    def unregister(self, model_cls: Type["Model"]) -> None:
        if self._models.get(model_cls.__name__) is model_cls:
            del self._models[model_cls.__name__]
        if getattr(model_cls, "_registry", None) is self:
            model_cls._registry = None

    def get(self, name: str) -> Optional[Type["Model"]]:
        """Model class by class name (or morph alias)."""
        return self._models.get(name) or self._morph_map.get(name)

    def resolve(self, model: Union[str, Type["Model"]]) -> Type["Model"]:
        """A model class from a class or a registered name."""
        if not isinstance(model, str):
            return model
        model_cls = self.get(model)
        if model_cls is None:
            raise ConfigFault(
                code="MODEL_NOT_REGISTERED",
                message=f"model not registered: {model}",
                metadata={"model": model},
            )
        return model_cls

    def all_models(self) -> Dict[str, Type["Model"]]:
        return dict(self._models)

    # ── Makers ───────────────────────────────────────────────────────

    def maker(self, callback: Callable[["Model"], Any]) -> None:
        """Run ``callback(model)`` for every model instance created."""
        self._makers.append(callback)

    def run_makers(self, model: "Model") -> None:
        for callback in self._makers:
            callback(model)

    # ── Macros ───────────────────────────────────────────────────────

    def macro(self, model_cls: Type["Model"], name: str, callback: Callable[..., Any]) -> None:
        """Add method ``name`` to ``model_cls``; called as ``callback(model, *args)``."""
        self._macros.setdefault(model_cls, {})[name] = callback

    def get_macro(self, model_cls: Type["Model"], name: str) -> Optional[Callable[..., Any]]:
        for klass in model_cls.__mro__:
            callback = self._macros.get(klass, {}).get(name)
            if callback is not None:
                return callback
        return None

    # ── Morph map ────────────────────────────────────────────────────

    def morph_map(self, mapping: Dict[str, Type["Model"]]) -> None:
        """Store ``alias`` instead of the class name in morph type columns."""
        self._morph_map.update(mapping)

    def get_morph_alias(self, model_cls: Type["Model"]) -> str:
        for alias, klass in self._morph_map.items():
            if klass is model_cls:
                return alias
        return model_cls.__name__

    def reset(self) -> None:
        """Forget every model and hook (useful for testing)."""
        for model_cls in list(self._models.values()):
            self.unregister(model_cls)
        self._makers.clear()
        self._macros.clear()
        self._morph_map.clear()

    def __repr__(self) -> str:
        return f"<ModelRegistry models={sorted(self._models)}>"
