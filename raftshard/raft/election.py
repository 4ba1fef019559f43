"""Leader election for a Raft peer: timers, vote requests and heartbeats."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass

from raftshard.raft.messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    RequestVoteArgs,
    RequestVoteReply,
    Role,
)
from raftshard.raft.snapshot import NO_VOTE

BASE_ELECTION_TIMEOUT_MS = 300
"""The election timeout is drawn from [T, 2T) milliseconds for this T."""


@dataclass
class _Ballot:
    """Votes gathered by one candidacy; read and written under ``mu``."""

    votes: int = 1
    done: bool = False


class ElectionMixin:
    """Election behaviour for a Raft peer.

    The host class provides ``mu``, ``me``, ``peers``, ``peer_trackers``,
    ``state``, ``current_term``, ``voted_for``, ``log``,
    ``election_timeout``, ``last_election`` and the methods ``_persist()``,
    ``_last_entry_term()`` and ``start_append_entries(heartbeat)``.
    """

    def _reset_election_timer(self) -> None:
        millis = BASE_ELECTION_TIMEOUT_MS + random.randrange(BASE_ELECTION_TIMEOUT_MS)
        self.election_timeout = millis / 1000
        self.last_election = time.monotonic()

    def _past_election_timeout(self) -> bool:
        with self.mu:
            return time.monotonic() - self.last_election > self.election_timeout

    def _become_candidate(self) -> None:
        self._reset_election_timer()
        self.state = Role.CANDIDATE
        self.current_term += 1
        self.voted_for = self.me

    def _become_leader(self) -> None:
        self.state = Role.LEADER
        for server, tracker in enumerate(self.peer_trackers):
            if server != self.me:
                tracker.next_index = self.log.last_index + 1
                tracker.match_index = 0

    def start_election(self) -> None:
        """Stand for election in a new term and ask every peer for its vote."""
        with self.mu:
            self._become_candidate()
            term = self.current_term
            args = RequestVoteArgs(
                term=term,
                candidate_id=self.me,
                last_log_index=self.log.last_index,
                last_log_term=self._last_entry_term(),
            )
            ballot = _Ballot()
            try:
                for server in range(len(self.peers)):
                    if server == self.me:
                        continue
                    threading.Thread(
                        target=self._solicit_vote,
                        args=(server, args, term, ballot),
                        daemon=True,
                    ).start()
            finally:
                self._persist()

    def _solicit_vote(
        self, server: int, args: RequestVoteArgs, term: int, ballot: _Ballot
    ) -> None:
        reply = self.peers[server].call("request_vote", args)
        if reply is None or not reply.vote_granted:
            return
        with self.mu:
            if reply.term < self.current_term:
                return
            if reply.term > self.current_term:
                self.state = Role.FOLLOWER
                self.voted_for = NO_VOTE
                self.current_term = reply.term
                self._persist()
                return
            ballot.votes += 1
            if ballot.done or ballot.votes <= len(self.peers) // 2:
                return
            if self.state != Role.CANDIDATE or self.current_term != term:
                return
            ballot.done = True
            self._become_leader()
            # Announce leadership at once so no rival wins the same term.
            threading.Thread(
                target=self.start_append_entries, args=(True,), daemon=True
            ).start()

    def handle_heartbeat(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        """Accept a heartbeat from a current leader and follow it."""
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
            self._persist()
            return reply

    def request_vote(self, args: RequestVoteArgs) -> RequestVoteReply:
        """Grant a vote to a candidate whose term and log are current enough."""
        with self.mu:
            reply = RequestVoteReply(term=self.current_term, vote_granted=True)
            if args.term < self.current_term:
                reply.vote_granted = False
                self._persist()
                return reply
            if args.term > self.current_term:
                self.current_term = args.term
                self.voted_for = NO_VOTE
                self.state = Role.FOLLOWER
                reply.term = self.current_term
                self._persist()

            last_term = self._last_entry_term()
            up_to_date = args.last_log_term > last_term or (
                args.last_log_term == last_term
                and args.last_log_index >= self.log.last_index
            )
            if self.voted_for in (NO_VOTE, args.candidate_id) and up_to_date:
                self.voted_for = args.candidate_id
                self.state = Role.FOLLOWER
                self._reset_election_timer()
                self._persist()
            else:
                reply.vote_granted = False
                reply.term = self.current_term
            return reply