"""
Quarry Cursor — single-pass lazy row stream.

Rows are pulled from the open statement one at a time. A cursor is not
restartable: once it has been consumed (or closed) ``exhausted`` turns
true and iterating again yields nothing; re-issue the query instead.

Usage:
    for user in User.where("status", 1).cursor():
        process(user)
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Optional

__all__ = ["Cursor"]


class Cursor:
    """Lazy iterator over a result set with explicit exhausted state."""

    __slots__ = ("_rows", "_transform", "_exhausted", "_count")

    def __init__(self, rows: Iterator[Any], transform: Optional[Callable[[Any], Any]] = None):
        self._rows = iter(rows)
        self._transform = transform
        self._exhausted = False
        self._count = 0

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def fetched(self) -> int:
        """Rows produced so far."""
        return self._count

    def __iter__(self) -> "Cursor":
        return self

    def __next__(self) -> Any:
        if self._exhausted:
            raise StopIteration
        try:
            row = next(self._rows)
        except StopIteration:
            self.close()
            raise
        self._count += 1
        return self._transform(row) if self._transform is not None else row

    def close(self) -> None:
        """Release the underlying statement."""
        if not self._exhausted:
            self._exhausted = True
            close = getattr(self._rows, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "exhausted" if self._exhausted else "open"
        return f"<Cursor {state} fetched={self._count}>"
