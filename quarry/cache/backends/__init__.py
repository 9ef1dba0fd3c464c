"""
Quarry Cache backends.
"""

from .memory import MemoryStore, TagSet

__all__ = ["MemoryStore", "TagSet"]
