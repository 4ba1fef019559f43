import threading
import time
from dataclasses import dataclass

from raftshard.raft.election import ElectionMixin
from raftshard.raft.messages import AppendEntriesArgs, Peer, Role
from raftshard.raft.raftlog import Entry, RaftLog
from raftshard.raft.replication import ReplicationMixin
from raftshard.raft.snapshot import NO_VOTE, SnapshotMixin


@dataclass
class _Tracker:
    next_index: int = 0
    match_index: int = 0


class _Node(ElectionMixin, ReplicationMixin, SnapshotMixin):
    def __init__(self, me, n):
        self.mu = threading.Lock()
        self.apply_cond = threading.Condition(self.mu)
        self.me = me
        self.peers = [Peer() for _ in range(n)]
        self.peer_trackers = [_Tracker() for _ in range(n)]
        self.state = Role.FOLLOWER
        self.current_term = 0
        self.voted_for = NO_VOTE
        self.log = RaftLog()
        self.commit_index = 0
        self.last_applied = 0
        self.snapshot_bytes = b""
        self.snapshot_last_include_index = 0
        self.snapshot_last_include_term = 0
        self.heartbeat_timeout = 0.15
        self.last_heartbeat = time.monotonic()
        self.persist_count = 0
        self._reset_election_timer()

    def _persist(self):
        self.persist_count += 1


def _pair(leader_term=1):
    leader, follower = _Node(0, 3), _Node(1, 3)
    third = _Node(2, 3)
    nodes = [leader, follower, third]
    for node in nodes:
        node.peers = [Peer(target) for target in nodes]
    leader.state = Role.LEADER
    leader.current_term = leader_term
    return leader, follower, third


def _terms(node):
    return [e.term for e in node.log.entries_from(node.log.first_index)]


def test_stale_leader_rejected():
    node = _Node(1, 3)
    node.current_term = 3
    reply = node.handle_append_entries(AppendEntriesArgs(leader_term=2))
    assert reply.success is False
    assert reply.follower_term == 3


def test_empty_log_accepts_entries_after_snapshot_point():
    node = _Node(1, 3)
    entries = [Entry(1, "a"), Entry(1, "b")]
    reply = node.handle_append_entries(
        AppendEntriesArgs(leader_term=1, prev_log_index=0, entries=entries)
    )
    assert reply.success is True
    assert node.log.last_index == len(entries)
    assert reply.prev_log_index == node.log.last_index
    assert [e.command for e in node.log.entries_from(1)] == ["a", "b"]


def test_empty_log_rejects_mismatched_prev():
    node = _Node(1, 3)
    reply = node.handle_append_entries(
        AppendEntriesArgs(leader_term=1, prev_log_index=3, prev_log_term=1)
    )
    assert reply.success is False
    assert reply.prev_log_index == node.log.last_index
    assert node.log.is_empty()


def test_prev_beyond_log_end_rejected():
    node = _Node(1, 3)
    node.log.append(Entry(1, "a"))
    reply = node.handle_append_entries(
        AppendEntriesArgs(leader_term=1, prev_log_index=4, prev_log_term=1)
    )
    assert reply.success is False
    assert reply.prev_log_index == node.log.last_index


def test_commit_index_follows_leader_but_not_past_log():
    node = _Node(1, 3)
    node.log.append(Entry(1, "a"))
    reply = node.handle_append_entries(
        AppendEntriesArgs(
            leader_term=1,
            prev_log_index=1,
            prev_log_term=1,
            entries=[Entry(1, "b")],
            leader_commit=10,
        )
    )
    assert reply.success is True
    assert node.commit_index == node.log.last_index


def test_conflicting_entry_overwritten():
    node = _Node(1, 3)
    node.log.append(Entry(1, "a"), Entry(1, "b"))
    node.handle_append_entries(
        AppendEntriesArgs(
            leader_term=3, prev_log_index=1, prev_log_term=1, entries=[Entry(3, "c")]
        )
    )
    assert node.log.entry(2) == Entry(3, "c")
    assert node.log.last_index == 2
    assert node.current_term == 3


def test_term_mismatch_reply_skips_conflicting_term():
    node = _Node(1, 3)
    node.log.append(Entry(1, "a"), Entry(2, "b"), Entry(2, "c"))
    reply = node.handle_append_entries(
        AppendEntriesArgs(leader_term=3, prev_log_index=3, prev_log_term=3)
    )
    assert reply.success is False
    assert reply.prev_log_index == 1
    assert reply.prev_log_term == node.log.entry(1).term


def test_successful_replication_commits_on_majority():
    leader, follower, _ = _pair()
    leader.log.append(Entry(1, "x"))
    leader.peer_trackers[1].next_index = 1
    leader.append_entries_to(1, False)
    assert _terms(follower) == _terms(leader)
    assert leader.peer_trackers[1].match_index == leader.log.last_index
    assert leader.peer_trackers[1].next_index == leader.log.last_index + 1
    assert leader.commit_index == leader.log.last_index


def test_entries_from_older_term_not_committed_by_count():
    leader, follower, _ = _pair(leader_term=2)
    leader.log.append(Entry(1, "x"))
    leader.peer_trackers[1].next_index = 1
    leader.append_entries_to(1, False)
    assert follower.log.last_index == leader.log.last_index
    assert leader.commit_index == 0


def test_non_leader_sends_nothing():
    leader, follower, _ = _pair()
    leader.state = Role.FOLLOWER
    leader.log.append(Entry(1, "x"))
    leader.peer_trackers[1].next_index = 1
    leader.append_entries_to(1, False)
    assert follower.log.last_index == 0
    reply = follower.handle_append_entries(
        AppendEntriesArgs(leader_term=1, prev_log_index=1, prev_log_term=1)
    )
    assert reply.success is False
    assert reply.prev_log_index == 0


def test_heartbeat_reply_with_newer_term_demotes_leader():
    leader, follower, _ = _pair()
    follower.current_term = 5
    leader.append_entries_to(1, True)
    assert leader.state == Role.FOLLOWER
    assert leader.current_term == follower.current_term
    assert leader.voted_for == NO_VOTE
    reply = leader.handle_heartbeat(AppendEntriesArgs(leader_term=1))
    assert reply.success is False
    assert reply.follower_term == 5


def test_append_reply_with_newer_term_demotes_leader():
    leader, follower, _ = _pair()
    follower.current_term = 5
    leader.log.append(Entry(1, "x"))
    leader.peer_trackers[1].next_index = 1
    leader.append_entries_to(1, False)
    assert leader.state == Role.FOLLOWER
    assert leader.current_term == follower.current_term


def test_leader_backs_up_and_repairs_divergent_follower():
    leader, follower, _ = _pair(leader_term=3)
    follower.current_term = 3
    leader.log.append(Entry(1, "a"), Entry(1, "b"), Entry(2, "c"))
    follower.log.append(Entry(1, "a"), Entry(3, "z"))
    leader.peer_trackers[1].next_index = leader.log.last_index + 1
    leader.append_entries_to(1, False)
    assert _terms(follower) != _terms(leader)
    leader.append_entries_to(1, False)
    assert _terms(follower) == _terms(leader)
    assert follower.log.last_index == leader.log.last_index


def test_start_append_entries_reaches_all_followers():
    leader, follower, third = _pair()
    leader.log.append(Entry(1, "x"))
    for tracker in leader.peer_trackers:
        tracker.next_index = 1
    leader.start_append_entries(False)
    deadline = time.monotonic() + 3
    while time.monotonic() < deadline and not (
        follower.log.last_index == 1 and third.log.last_index == 1
    ):
        time.sleep(0.01)
    assert _terms(follower) == _terms(leader)
    assert _terms(third) == _terms(leader)


def test_start_append_entries_ignored_when_not_leader():
    leader, follower, _ = _pair()
    leader.state = Role.CANDIDATE
    leader.log.append(Entry(1, "x"))
    leader.start_append_entries(False)
    time.sleep(0.05)
    assert follower.log.last_index == 0
    reply = follower.handle_append_entries(
        AppendEntriesArgs(leader_term=1, prev_log_index=1, prev_log_term=1)
    )
    assert reply.success is False
    assert reply.prev_log_index == 0