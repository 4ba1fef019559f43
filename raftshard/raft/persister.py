"""Holder for a Raft peer's persistent state and service snapshot."""

from __future__ import annotations

import threading


class Persister:
    """Thread-safe store for serialized Raft state and a snapshot.

    Every value handed in or out is an immutable ``bytes`` copy, so callers
    can never alter what is stored through a buffer they still hold.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._raftstate = b""
        self._snapshot = b""

    def copy(self) -> Persister:
        """Return a new persister holding the same state and snapshot."""
        with self._lock:
            other = Persister()
            other._raftstate = self._raftstate
            other._snapshot = self._snapshot
            return other

    def read_raft_state(self) -> bytes:
        with self._lock:
            return self._raftstate

    def raft_state_size(self) -> int:
        with self._lock:
            return len(self._raftstate)

    def save_raft_state(self, state: bytes) -> None:
        with self._lock:
            self._raftstate = bytes(state)

    def save(self, raftstate: bytes, snapshot: bytes) -> None:
        """Store Raft state and snapshot together in one atomic step."""
        with self._lock:
            self._raftstate = bytes(raftstate)
            self._snapshot = bytes(snapshot)

    def read_snapshot(self) -> bytes:
        with self._lock:
            return self._snapshot

    def snapshot_size(self) -> int:
        with self._lock:
            return len(self._snapshot)

    def save_state_and_snapshot(self, state: bytes, snapshot: bytes) -> None:
        """Store Raft state and snapshot together in one atomic step."""
        self.save(state, snapshot)