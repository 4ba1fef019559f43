"""Log replication for a Raft peer: append handling, sending and commits."""

from __future__ import annotations

import threading
import time

from raftshard.raft.messages import AppendEntriesArgs, AppendEntriesReply, Role
from raftshard.raft.snapshot import NO_VOTE


class ReplicationMixin:
    """Replication behaviour for a Raft peer.

    The host class provides ``mu``, ``apply_cond`` (a condition on ``mu``),
    ``me``, ``peers``, ``peer_trackers``, ``state``, ``current_term``,
    ``voted_for``, ``log``, ``commit_index``, ``heartbeat_timeout``,
    ``last_heartbeat``, ``snapshot_last_include_index``,
    ``snapshot_last_include_term`` and the methods ``_persist()``,
    ``_reset_election_timer()``, ``_entry_term(index)``,
    ``_last_entry_term()`` and ``install_snapshot(server)``.
    """

    def _past_heartbeat_timeout(self) -> bool:
        with self.mu:
            return time.monotonic() - self.last_heartbeat > self.heartbeat_timeout

    def _reset_heartbeat_timer(self) -> None:
        with self.mu:
            self.last_heartbeat = time.monotonic()

    def _adopt_newer_term(self, term: int) -> None:
        self.state = Role.FOLLOWER
        self.voted_for = NO_VOTE
        self.current_term = term
        self._persist()

    def _spawn_install_snapshot(self, server: int) -> None:
        threading.Thread(target=self.install_snapshot, args=(server,), daemon=True).start()

    def handle_append_entries(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        """Merge a leader's entries into this log, or report where logs diverge.

        On failure the reply's ``prev_log_index`` and ``prev_log_term`` tell
        the leader where to resume, skipping a whole conflicting term at once.
        """
        with self.mu:
            reply = AppendEntriesReply(follower_term=self.current_term, success=True)
            if args.leader_term < self.current_term:
                reply.success = False
                return reply
            self._reset_election_timer()
            self.state = Role.FOLLOWER
            if args.leader_term > self.current_term:
                self.voted_for = NO_VOTE
                self.current_term = args.leader_term
                reply.follower_term = self.current_term
            try:
                self._merge_entries(args, reply)
            finally:
                self._persist()
            return reply

    def _merge_entries(self, args: AppendEntriesArgs, reply: AppendEntriesReply) -> None:
        log = self.log
        prev = args.prev_log_index
        reply.follower_term = self.current_term

        if log.is_empty():
            # Either a fresh peer or one whose log is entirely in its snapshot.
            reply.success = prev == self.snapshot_last_include_index
            if reply.success:
                log.append(*args.entries)
            reply.prev_log_index = log.last_index
            reply.prev_log_term = self._last_entry_term()
            return

        if prev + 1 < log.first_index or prev > log.last_index:
            reply.success = False
            reply.prev_log_index = log.last_index
            reply.prev_log_term = self._last_entry_term()
            return

        if self._entry_term(prev) == args.prev_log_term:
            overwritten = False
            for offset, entry in enumerate(args.entries):
                index = prev + 1 + offset
                if index > log.last_index:
                    log.append(entry)
                elif log.entry(index).term != entry.term:
                    overwritten = True
                    log[index] = entry
            if overwritten:
                log.last_index = prev + len(args.entries)
            if args.leader_commit > self.commit_index:
                self.commit_index = min(args.leader_commit, log.last_index)
                self.apply_cond.notify_all()
            reply.success = True
            reply.prev_log_index = log.last_index
            reply.prev_log_term = self._last_entry_term()
            return

        conflict_term = self._entry_term(prev)
        index = prev
        while index >= log.first_index and self._entry_term(index) == conflict_term:
            index -= 1
        reply.success = False
        if index >= log.first_index:
            reply.prev_log_index = index
            reply.prev_log_term = self._entry_term(index)
        else:
            reply.prev_log_index = self.snapshot_last_include_index
            reply.prev_log_term = self.snapshot_last_include_term

    def _try_commit(self, match_index: int) -> None:
        """Commit up to ``match_index`` once a majority holds it (mu held)."""
        log = self.log
        if match_index <= self.commit_index:
            return
        if match_index > log.last_index or match_index < log.first_index:
            return
        # Only entries of the current term are committed by counting replicas.
        if self._entry_term(match_index) != self.current_term:
            return
        holders = 1 + sum(
            1
            for server, tracker in enumerate(self.peer_trackers)
            if server != self.me and match_index <= tracker.match_index
        )
        if holders > len(self.peers) // 2:
            self.commit_index = match_index
            self.apply_cond.notify_all()

    def start_append_entries(self, heartbeat: bool) -> None:
        """As leader, send a heartbeat or new entries to every other peer."""
        with self.mu:
            self._reset_election_timer()
            if self.state != Role.LEADER:
                return
            for server in range(len(self.peers)):
                if server == self.me:
                    continue
                threading.Thread(
                    target=self.append_entries_to, args=(server, heartbeat), daemon=True
                ).start()

    def append_entries_to(self, server: int, heartbeat: bool) -> None:
        """Send one heartbeat or append request to ``server`` and act on the reply."""
        if heartbeat:
            self._send_heartbeat(server)
        else:
            self._send_entries(server)

    def _send_heartbeat(self, server: int) -> None:
        with self.mu:
            if self.state != Role.LEADER:
                return
            args = AppendEntriesArgs(leader_term=self.current_term, leader_id=self.me)
        reply = self.peers[server].call("handle_heartbeat", args)
        if reply is None:
            return
        with self.mu:
            if self.state != Role.LEADER or reply.follower_term < self.current_term:
                return
            if reply.follower_term > self.current_term:
                self._adopt_newer_term(reply.follower_term)

    def _send_entries(self, server: int) -> None:
        with self.mu:
            if self.state != Role.LEADER:
                return
            log = self.log
            prev = min(log.last_index, self.peer_trackers[server].next_index - 1)
            if prev + 1 < log.first_index:
                self._spawn_install_snapshot(server)
                return
            args = AppendEntriesArgs(
                leader_term=self.current_term,
                leader_id=self.me,
                prev_log_index=prev,
                prev_log_term=self._entry_term(prev),
                entries=log.entries_from(prev + 1),
                leader_commit=self.commit_index,
            )

        reply = self.peers[server].call("handle_append_entries", args)
        if reply is None:
            return

        with self.mu:
            if self.state != Role.LEADER or reply.follower_term < self.current_term:
                return
            if reply.follower_term > self.current_term:
                self._adopt_newer_term(reply.follower_term)
                return
            tracker = self.peer_trackers[server]
            if reply.success:
                matched = args.prev_log_index + len(args.entries)
                tracker.next_index = matched + 1
                tracker.match_index = matched
                self._try_commit(matched)
                return
            self._back_up(server, reply)

    def _back_up(self, server: int, reply: AppendEntriesReply) -> None:
        """Move the follower's next index back after a rejected append (mu held)."""
        log = self.log
        tracker = self.peer_trackers[server]
        if log.is_empty() or reply.prev_log_index + 1 < log.first_index:
            self._spawn_install_snapshot(server)
            return
        if reply.prev_log_index > log.last_index:
            tracker.next_index = log.last_index + 1
        elif self._entry_term(reply.prev_log_index) == reply.prev_log_term:
            tracker.next_index = reply.prev_log_index + 1
        else:
            # Terms differ at that index: skip back over the whole term.
            conflict_term = self._entry_term(reply.prev_log_index)
            index = reply.prev_log_index
            while index >= log.first_index and self._entry_term(index) == conflict_term:
                index -= 1
            if index + 1 < log.first_index and log.first_index > 1:
                self._spawn_install_snapshot(server)
                return
            tracker.next_index = index + 1