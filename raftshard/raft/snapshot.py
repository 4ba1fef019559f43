"""Log compaction and snapshot transfer for a Raft peer."""

from __future__ import annotations

import threading

from raftshard.raft.messages import (
    ApplyMsg,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    Role,
)

NO_VOTE = -1


class SnapshotError(RuntimeError):
    """Raised when the service snapshots past what it has been given."""


class SnapshotMixin:
    """Snapshot handling for a Raft peer.

    The host class provides ``mu`` (a lock), ``me``, ``peers``,
    ``peer_trackers`` (objects with ``next_index`` and ``match_index``),
    ``state``, ``current_term``, ``voted_for``, ``log``, ``commit_index``,
    ``last_applied``, ``apply_helper``, ``snapshot_bytes``,
    ``snapshot_last_include_index``, ``snapshot_last_include_term`` and the
    methods ``_persist()``, ``_reset_election_timer()`` and
    ``_try_commit(index)``, all called with ``mu`` held.
    """

    def _entry_term(self, index: int) -> int:
        """Term of the entry at ``index``, counting the snapshot's last entry."""
        if index == 0:
            return 0
        if index == self.log.first_index - 1:
            return self.snapshot_last_include_term
        if self.log.first_index <= self.log.last_index:
            return self.log.entry(index).term
        return -1

    def _last_entry_term(self) -> int:
        if self.log.last_index >= self.log.first_index:
            return self.log.entry(self.log.last_index).term
        return self.snapshot_last_include_term

    def snapshot(self, index: int, data: bytes) -> None:
        """Record a service snapshot through ``index`` and trim the log.

        Only a leader acts on this; it then sends the snapshot to every peer.
        Raises SnapshotError if ``index`` has not been applied yet.
        """
        with self.mu:
            if self.state != Role.LEADER:
                return
            log = self.log
            if log.first_index > index:
                return
            if index > self.last_applied:
                raise SnapshotError(
                    f"snapshot index {index} beyond last applied {self.last_applied}"
                )
            self.snapshot_bytes = bytes(data)
            self.snapshot_last_include_index = index
            self.snapshot_last_include_term = self._entry_term(index)
            new_first = index + 1
            if new_first <= log.last_index:
                log.entries = log.entries[new_first - log.first_index :]
            else:
                log.last_index = new_first - 1
                log.entries = []
            log.first_index = new_first
            self.commit_index = max(self.commit_index, index)
            self.last_applied = max(self.last_applied, index)
            self._persist()
            for server in range(len(self.peers)):
                if server != self.me:
                    threading.Thread(
                        target=self.install_snapshot, args=(server,), daemon=True
                    ).start()

    def request_install_snapshot(self, args: InstallSnapshotArgs) -> InstallSnapshotReply:
        """Handle a leader's snapshot: replace the covered log prefix with it."""
        with self.mu:
            reply = InstallSnapshotReply(term=self.current_term)
            if args.term < self.current_term:
                return reply
            self.state = Role.FOLLOWER
            self._reset_election_timer()
            if args.term > self.current_term:
                self.voted_for = NO_VOTE
                self.current_term = args.term
                reply.term = self.current_term
            try:
                if args.last_include_index > self.snapshot_last_include_index:
                    self._install(args)
            finally:
                self._persist()
            return reply

    def _install(self, args: InstallSnapshotArgs) -> None:
        log = self.log
        included = args.last_include_index
        self.snapshot_bytes = bytes(args.snapshot)
        self.snapshot_last_include_index = included
        self.snapshot_last_include_term = args.last_include_term
        if included >= log.last_index:
            log.entries = []
            log.last_index = included
        else:
            log.entries = log.entries[included + 1 - log.first_index :]
        log.first_index = included + 1
        if included > self.last_applied:
            self.apply_helper.try_apply(
                ApplyMsg(
                    snapshot_valid=True,
                    snapshot=self.snapshot_bytes,
                    snapshot_term=self.snapshot_last_include_term,
                    snapshot_index=included,
                )
            )
            self.last_applied = included
        self.commit_index = max(self.commit_index, included)

    def install_snapshot(self, server: int) -> None:
        """Send this leader's snapshot to peer ``server`` and act on the reply."""
        with self.mu:
            if self.state != Role.LEADER:
                return
            args = InstallSnapshotArgs(
                term=self.current_term,
                leader_id=self.me,
                last_include_index=self.snapshot_last_include_index,
                last_include_term=self.snapshot_last_include_term,
                snapshot=self.snapshot_bytes,
            )
        reply = self.peers[server].call("request_install_snapshot", args)
        if reply is None:
            return
        with self.mu:
            if self.state != Role.LEADER or reply.term < self.current_term:
                return
            if reply.term > self.current_term:
                self.voted_for = NO_VOTE
                self.state = Role.FOLLOWER
                self.current_term = reply.term
                self._persist()
                return
            tracker = self.peer_trackers[server]
            tracker.next_index = args.last_include_index + 1
            tracker.match_index = args.last_include_index
            self._try_commit(tracker.match_index)