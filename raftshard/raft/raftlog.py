"""The replicated log, addressed by absolute Raft indices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Entry:
    """One log entry: the term it was created in and its command."""

    term: int
    command: Any = None


@dataclass
class RaftLog:
    """Log entries from ``first_index`` to ``last_index`` inclusive.

    Entries before ``first_index`` have been folded into a snapshot.
    """

    entries: list[Entry] = field(default_factory=list)
    first_index: int = 1
    last_index: int = 0

    def _offset(self, index: int) -> int:
        return index - self.first_index

    def entry(self, index: int) -> Entry:
        """Return the entry stored at absolute ``index``."""
        offset = self._offset(index)
        if offset < 0 or offset >= len(self.entries):
            raise IndexError(
                f"log index {index} outside [{self.first_index}, {self.last_index}]"
            )
        return self.entries[offset]

    def __setitem__(self, index: int, value: Entry) -> None:
        offset = self._offset(index)
        if offset < 0 or offset >= len(self.entries):
            raise IndexError(
                f"log index {index} outside [{self.first_index}, {self.last_index}]"
            )
        self.entries[offset] = value

    def append(self, *args: Entry) -> None:
        """Append entries after ``last_index``, dropping anything beyond it."""
        keep = self._offset(self.last_index) + 1
        if keep < 0:
            raise IndexError("last index lies before the start of the log")
        self.entries = self.entries[:keep] + list(args)
        self.last_index += len(args)

    def entries_from(self, start: int) -> list[Entry]:
        """Return a copy of the entries from ``start`` to ``last_index``."""
        if start < self.first_index or start > self.last_index + 1:
            raise IndexError(
                f"start {start} outside [{self.first_index}, {self.last_index + 1}]"
            )
        return list(self.entries[self._offset(start) : self._offset(self.last_index) + 1])

    def is_empty(self) -> bool:
        return self.first_index > self.last_index

    def __str__(self) -> str:
        if self.is_empty():
            return "logempty"
        return str(self.entries_from(self.first_index))