import pytest

from raftshard.raft.messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    ApplyMsg,
    InstallSnapshotArgs,
    Peer,
    RequestVoteArgs,
    RequestVoteReply,
    Role,
)
from raftshard.raft.raftlog import Entry


class _Echo:
    def __init__(self):
        self.seen = []

    def request_vote(self, args):
        self.seen.append(args)
        args.term += 100
        return RequestVoteReply(term=args.term, vote_granted=True)


def test_roles_have_source_values():
    assert [Role(v) for v in (1, 2, 3)] == [Role.FOLLOWER, Role.CANDIDATE, Role.LEADER]


def test_peer_call_delivers_and_returns_reply():
    target = _Echo()
    peer = Peer(target)
    args = RequestVoteArgs(term=2, candidate_id=1)
    reply = peer.call("request_vote", args)
    assert reply.vote_granted is True
    assert reply.term == 102
    assert target.seen[0].candidate_id == 1


def test_peer_call_copies_arguments():
    target = _Echo()
    args = RequestVoteArgs(term=2)
    Peer(target).call("request_vote", args)
    assert args.term == 2


def test_disabled_peer_loses_call():
    target = _Echo()
    peer = Peer(target, enabled=False)
    assert peer.call("request_vote", RequestVoteArgs()) is None
    assert target.seen == []


def test_peer_without_target_loses_call():
    assert Peer().call("request_vote", RequestVoteArgs()) is None


def test_peer_unknown_method_raises():
    with pytest.raises(AttributeError):
        Peer(_Echo()).call("no_such_method", RequestVoteArgs())


def test_apply_msg_index_for_command_and_snapshot():
    cmd = ApplyMsg(command_valid=True, command="x", command_index=7, snapshot_index=3)
    snap = ApplyMsg(snapshot_valid=True, snapshot=b"s", snapshot_index=9, command_index=2)
    assert cmd.index() == cmd.command_index
    assert snap.index() == snap.snapshot_index


def test_reply_defaults_refuse():
    assert RequestVoteReply().vote_granted is False
    assert AppendEntriesReply().success is False


def test_append_entries_args_hold_entries_independently():
    a = AppendEntriesArgs()
    b = AppendEntriesArgs()
    a.entries.append(Entry(1, "x"))
    assert b.entries == []


def test_install_snapshot_args_round_trip_through_peer():
    class _Sink:
        def request_install_snapshot(self, args):
            return args

    args = InstallSnapshotArgs(term=3, leader_id=1, last_include_index=5,
                               last_include_term=2, snapshot=b"data")
    assert Peer(_Sink()).call("request_install_snapshot", args) == args