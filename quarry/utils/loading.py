"""
Class loading for configuration values naming a class by path.
"""

import importlib
from typing import Any


def import_string(path: Any) -> Any:
    """
    Resolve ``"package.module:Class"`` or ``"package.module.Class"``.

    Non-string values (already a class) are returned unchanged.
    """
    if not isinstance(path, str):
        return path
    if ":" in path:
        module_path, attr = path.rsplit(":", 1)
    else:
        module_path, _, attr = path.rpartition(".")
    if not module_path:
        raise ImportError(f"Not a dotted path: {path!r}")
    module = importlib.import_module(module_path)
    if not hasattr(module, attr):
        raise ImportError(f"Module '{module_path}' has no attribute '{attr}'")
    return getattr(module, attr)
