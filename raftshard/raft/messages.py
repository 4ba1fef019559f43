"""Roles, message types and the peer endpoint used between Raft servers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from raftshard.raft.raftlog import Entry


class Role(IntEnum):
    FOLLOWER = 1
    CANDIDATE = 2
    LEADER = 3


class Peer:
    """An in-process endpoint that forwards calls to a target object.

    Arguments and replies are deep-copied, as they would be when sent over
    a wire. A call to a disabled endpoint, or one with no target, is lost
    and returns ``None``.
    """

    def __init__(self, target: Any = None, enabled: bool = True) -> None:
        self.target = target
        self.enabled = enabled

    def call(self, method: str, args: Any) -> Any:
        """Invoke ``method`` on the target with ``args``; ``None`` if unreachable."""
        target = self.target
        if not self.enabled or target is None:
            return None
        handler = getattr(target, method)
        reply = handler(copy.deepcopy(args))
        if not self.enabled:
            return None
        return copy.deepcopy(reply)


@dataclass
class ApplyMsg:
    """A committed command or an installed snapshot handed to the service."""

    command_valid: bool = False
    command: Any = None
    command_index: int = 0
    snapshot_valid: bool = False
    snapshot: bytes = b""
    snapshot_term: int = 0
    snapshot_index: int = 0

    def index(self) -> int:
        """The log index this message refers to."""
        return self.command_index if self.command_valid else self.snapshot_index


@dataclass
class RequestVoteArgs:
    term: int = 0
    candidate_id: int = 0
    last_log_index: int = 0
    last_log_term: int = 0


@dataclass
class RequestVoteReply:
    term: int = 0
    vote_granted: bool = False


@dataclass
class AppendEntriesArgs:
    leader_term: int = 0
    leader_id: int = 0
    prev_log_index: int = 0
    prev_log_term: int = 0
    entries: list[Entry] = field(default_factory=list)
    leader_commit: int = 0


@dataclass
class AppendEntriesReply:
    follower_term: int = 0
    success: bool = False
    prev_log_index: int = 0
    prev_log_term: int = 0


@dataclass
class InstallSnapshotArgs:
    term: int = 0
    leader_id: int = 0
    last_include_index: int = 0
    last_include_term: int = 0
    snapshot: bytes = b""


@dataclass
class InstallSnapshotReply:
    term: int = 0