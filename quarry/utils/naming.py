"""
Name conversion utilities for Quarry.
"""

import re

_SNAKE_RE = re.compile(r"(?<=[a-z0-9])([A-Z])|(?<=[A-Z])([A-Z])(?=[a-z])")


def snake(value: str) -> str:
    """
    Convert ``CamelCase`` / ``camelCase`` to ``snake_case``.

    Example:
        snake("UserProfile") -> "user_profile"
        snake("HTTPLog") -> "http_log"
    """
    if not value or value.islower():
        return value
    return _SNAKE_RE.sub(lambda m: "_" + (m.group(1) or m.group(2)), value).lower()


def studly(value: str) -> str:
    """``user_profile`` -> ``UserProfile``."""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[_\-\s]+", value) if part)


def camel(value: str) -> str:
    """``user_profile`` -> ``userProfile``."""
    result = studly(value)
    return result[:1].lower() + result[1:]


def class_basename(value) -> str:
    """Class name without its module path."""
    if isinstance(value, str):
        return value.rsplit(".", 1)[-1]
    if not isinstance(value, type):
        value = type(value)
    return value.__name__
