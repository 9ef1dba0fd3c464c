"""
Quarry Utils Package

- naming: snake / camel / studly case conversion for table, column
  and relation names
- loading: dotted-path class resolution for config values
"""

from .loading import import_string
from .naming import camel, class_basename, snake, studly

__all__ = [
    "camel",
    "class_basename",
    "import_string",
    "snake",
    "studly",
]
